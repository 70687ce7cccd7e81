"""
Session codecs - Turn extracted browser session state into an opaque blob.

The default codec only serializes. Encryption at rest belongs to whoever
stores the blob; plug in a codec that wraps your key management to get it.
"""

import base64
import binascii
import json
from typing import Any, Dict, Protocol

from web_replay_agent.exceptions.login import SessionRestoreError


class SessionCodec(Protocol):
    """Anything that can round-trip a session mapping through a string."""

    def encode(self, data: Dict[str, Any]) -> str:
        ...

    def decode(self, blob: str) -> Dict[str, Any]:
        ...


class JsonSessionCodec:
    """URL-safe base64 of compact JSON. Not encryption."""

    def encode(self, data: Dict[str, Any]) -> str:
        raw = json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii")

    def decode(self, blob: str) -> Dict[str, Any]:
        try:
            raw = base64.urlsafe_b64decode(blob.encode("ascii"))
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeError, ValueError) as e:
            raise SessionRestoreError(f"Corrupt session blob: {e}")
        if not isinstance(data, dict):
            raise SessionRestoreError("Session blob does not contain an object")
        return data
