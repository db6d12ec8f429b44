"""Token-gated public download URLs.

Firebase Storage serves an object to anyone presenting one of the tokens
listed in its ``firebaseStorageDownloadTokens`` custom metadata. These helpers
only build URLs and tokens; storing the token on the object is the caller's
job (see FileMetadata.download_tokens and OnlineFilesystem.set_metadata).
"""

from __future__ import annotations

import uuid
from urllib.parse import quote

from bucketfs.models import TokenUrl

FIREBASE_DOWNLOAD_BASE_URL = "https://firebasestorage.googleapis.com/v0/b"

# Characters encodeURIComponent leaves alone besides letters, digits and "_.-~".
_URI_COMPONENT_SAFE = "!*'()"


def create_url(bucket: str, path: str, token: str) -> str:
    """Build the public download URL for ``path`` gated by ``token``.

    The path is percent-encoded as a single URI component, so "/" becomes
    "%2F". Pure function: identical inputs give identical output.
    """
    encoded = quote(path, safe=_URI_COMPONENT_SAFE)
    return f"{FIREBASE_DOWNLOAD_BASE_URL}/{bucket}/o/{encoded}?alt=media&token={token}"


def generate_token() -> str:
    """Return a new random download token (UUID4, 122 random bits)."""
    return str(uuid.uuid4())


def generate_token_and_url(bucket: str, path: str) -> TokenUrl:
    """Generate a fresh token and the download URL embedding it.

    The token is not registered anywhere.
    """
    token = generate_token()
    return TokenUrl(token=token, url=create_url(bucket, path, token))
