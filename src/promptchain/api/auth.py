"""Shared-secret authorization for mutating routes.

Edits and deletions (every ``PUT`` and ``DELETE``) and writes to the reference
collections (``POST`` on artists and inspirations) require the caller to send
the server's master key in the ``X-Master-Key`` header.  Creating chains and
versions and generating images stay open.
"""

from __future__ import annotations

import secrets

MASTER_KEY_HEADER = "X-Master-Key"

_GUARDED_METHODS = frozenset({"PUT", "DELETE"})
_GUARDED_POST_PREFIXES = ("/api/artists", "/api/inspirations")


def requires_master_key(method: str, path: str) -> bool:
    """Return ``True`` if *method* on *path* needs the master key."""
    method = method.upper()
    if method in _GUARDED_METHODS:
        return True
    return method == "POST" and path.startswith(_GUARDED_POST_PREFIXES)


def key_matches(supplied: str | None, master_key: str | None) -> bool:
    """Compare a supplied key with the master key in constant time.

    An unset master key matches nothing.
    """
    if not master_key or supplied is None:
        return False
    return secrets.compare_digest(supplied.encode("utf-8"), master_key.encode("utf-8"))


def authorize(method: str, path: str, supplied: str | None, master_key: str | None) -> bool:
    """Decide whether a request may proceed.

    Args:
        method: HTTP method.
        path: Request path.
        supplied: Value of the ``X-Master-Key`` header, if any.
        master_key: The server's configured master key.

    Returns:
        ``True`` to allow, ``False`` to deny.
    """
    if not requires_master_key(method, path):
        return True
    return key_matches(supplied, master_key)
