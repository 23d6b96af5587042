"""
Object key and working-file name derivation.

Keys look like ``landscape/<token>.mp4``: the orientation prefix partitions
storage, the token makes keys unguessable and collision-resistant.
"""

import base64
import re
import secrets
from pathlib import Path
from typing import Union

from .errors import InvalidInputError, UnsupportedMediaTypeError
from .models import Orientation


ACCEPTED_MEDIA_TYPE = "video/mp4"
TOKEN_BYTES = 32
FAST_START_SUFFIX = ".processing"

_TOKEN = r"[!#$%&'*+.^_`|~0-9A-Za-z-]+"
_MEDIA_TYPE_RE = re.compile(rf"^({_TOKEN})/({_TOKEN})$")


def parse_media_type(header_value: str) -> str:
    """
    Extract the bare media type from a Content-Type header value.

    Parameters (``; codecs=...``) are dropped and the result is lowercased.
    Raises InvalidInputError when the value is not ``type/subtype``.
    """
    media_type = (header_value or "").split(";", 1)[0].strip().lower()
    if not _MEDIA_TYPE_RE.match(media_type):
        raise InvalidInputError(
            f"Unparsable media type: {header_value!r}",
            safe_message="Couldn't parse media type",
        )
    return media_type


def extension_for(media_type: str) -> str:
    """Return the file extension for the single accepted media type."""
    if media_type != ACCEPTED_MEDIA_TYPE:
        raise UnsupportedMediaTypeError(f"Rejected media type: {media_type!r}")
    return media_type.split("/", 1)[1]


def generate_token() -> str:
    """32 random bytes as URL-safe base64 without padding."""
    raw = secrets.token_bytes(TOKEN_BYTES)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def build_object_key(media_type: str, orientation: Orientation) -> str:
    extension = extension_for(media_type)
    return f"{orientation.value}/{generate_token()}.{extension}"


def fast_start_output_path(input_path: Union[str, Path]) -> Path:
    """Where the fast-start copy of ``input_path`` is written."""
    return Path(f"{input_path}{FAST_START_SUFFIX}")
