"""Error taxonomy for the Prompt Chain service.

Every error the service raises on purpose derives from
:class:`PromptChainError` and carries the HTTP status the gateway should
answer with.  The message is intended to be shown to the caller as-is inside
the ``{"error": message}`` envelope.
"""


class PromptChainError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(PromptChainError):
    """Storage or provider settings are absent or malformed.

    Fatal for the current request and never retried.  Absent settings answer
    503; settings of the wrong shape answer 500.
    """

    status_code = 503


class SchemaMissingError(PromptChainError):
    """A store statement hit a table that does not exist yet.

    Raised internally so the store can provision the schema and retry once.
    Callers only ever see it promoted to :class:`StoreError`.
    """


class StoreError(PromptChainError):
    """Any persistence failure that is not recovered locally."""


class ChainNotFoundError(PromptChainError):
    """The referenced chain (or chain version) does not exist."""

    status_code = 404


class ProviderError(PromptChainError):
    """The image provider answered with a non-success status.

    The provider's own status code and body text are preserved.
    """

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Provider API Error: {body}", status_code=status_code)
        self.body = body


class DecodeError(PromptChainError):
    """The provider's archive is empty or unreadable."""


class AuthError(PromptChainError):
    """The shared secret is missing or does not match."""

    status_code = 401
