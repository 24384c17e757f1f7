"""Decode the provider's zip archive into image bytes and a resolved seed.

The provider answers a generate call with a zip archive.  The first entry is
the image; some responses also carry a ``.json`` metadata entry reporting the
seed the provider actually used.

Seed resolution order:

1. a numeric ``seed`` in the first ``.json`` entry,
2. the seed that was sent with the request,
3. ``0``, meaning "chosen by the provider and not recoverable".
"""

from __future__ import annotations

import io
import json
import logging
import math
import mimetypes
import zipfile
from dataclasses import dataclass

from promptchain.core.errors import DecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodedImage:
    """Result of decoding a provider archive.

    Attributes:
        image_bytes: The image entry, byte-for-byte.
        seed: The resolved seed.
        filename: Name of the image entry inside the archive.
    """

    image_bytes: bytes
    seed: int
    filename: str

    @property
    def media_type(self) -> str:
        """Guess the image MIME type from the entry name (PNG by default)."""
        guessed, _ = mimetypes.guess_type(self.filename)
        return guessed or "image/png"


def _metadata_seed(archive: zipfile.ZipFile, names: list[str]) -> int | None:
    """Return the seed from the first ``.json`` entry, or ``None``.

    Unreadable or malformed metadata is logged and ignored.
    """
    metadata_name = next((name for name in names if name.endswith(".json")), None)
    if metadata_name is None:
        return None

    try:
        metadata = json.loads(archive.read(metadata_name).decode("utf-8"))
    except (ValueError, zipfile.BadZipFile, OSError) as e:
        logger.warning(f"Failed to parse metadata entry {metadata_name}: {e}")
        return None

    if not isinstance(metadata, dict):
        return None
    seed = metadata.get("seed")
    if isinstance(seed, bool) or not isinstance(seed, (int, float)):
        return None
    # json.loads accepts Infinity and NaN.
    if isinstance(seed, float) and not math.isfinite(seed):
        logger.warning(f"Ignoring non-finite seed in {metadata_name}: {seed}")
        return None
    return int(seed)


def decode_response(archive_bytes: bytes, sent_seed: int | None) -> DecodedImage:
    """Unpack a provider archive.

    Args:
        archive_bytes: Raw zip archive returned by the provider.
        sent_seed: Seed sent with the request, or ``None`` if the provider
            was left to choose.

    Returns:
        The image entry and the resolved seed.

    Raises:
        DecodeError: If the archive is unreadable or has no entries.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(archive_bytes))
    except zipfile.BadZipFile as e:
        raise DecodeError(f"Unreadable image archive: {e}") from e

    with archive:
        names = archive.namelist()
        if not names:
            raise DecodeError("No image found in response")

        image_name = names[0]
        try:
            image_bytes = archive.read(image_name)
        except (zipfile.BadZipFile, OSError) as e:
            raise DecodeError(f"Unreadable image entry {image_name}: {e}") from e

        seed = _metadata_seed(archive, names)

    if seed is None:
        seed = sent_seed if sent_seed is not None else 0

    return DecodedImage(image_bytes=image_bytes, seed=seed, filename=image_name)
