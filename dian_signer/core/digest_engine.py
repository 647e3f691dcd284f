"""
Digest Engine

SHA-256 + base64, used for every digest value that feeds a signature.
"""

import base64
import hashlib
from typing import Union


class DigestEngine:
    """Produces base64-encoded SHA-256 digests."""

    algorithm = "SHA-256"

    def digest(self, data: Union[bytes, str]) -> str:
        if isinstance(data, str):
            data = data.encode("utf-8")
        return base64.b64encode(hashlib.sha256(data).digest()).decode("ascii")

    def digest_hex(self, data: bytes) -> str:
        """Hex digest, for log fingerprints"""
        return hashlib.sha256(data).hexdigest()
