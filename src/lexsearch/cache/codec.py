"""Serialization, compression and integrity checks for cached values.

Values are stored as JSON text. Payloads above a size threshold are gzipped
and base64-encoded so they stay valid text for any ``DurableStore``. Every
payload carries a SHA-256 checksum of its JSON form.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import hashlib
import json
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from lexsearch.exceptions import CacheIntegrityError

log = structlog.get_logger(__name__)


def checksum(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def serialize(value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise CacheIntegrityError(f"value is not JSON serializable: {exc}") from exc


def compress(payload: str) -> str:
    return base64.b64encode(gzip.compress(payload.encode("utf-8"))).decode("ascii")


def decompress(data: str) -> str:
    try:
        return gzip.decompress(base64.b64decode(data, validate=True)).decode("utf-8")
    except (binascii.Error, OSError, EOFError, UnicodeDecodeError, ValueError) as exc:
        raise CacheIntegrityError(f"payload could not be decompressed: {exc}") from exc


@dataclass(frozen=True, slots=True)
class EncodedPayload:
    payload: str
    checksum: str
    compressed: bool


class PayloadCodec:
    """Encodes values for storage and decodes them leniently.

    ``decode`` never raises: a payload that fails to decompress is treated as
    already decompressed, and a checksum or JSON failure returns the stored
    text as is. Each fallback is logged as a warning.
    """

    def __init__(self, *, use_compression: bool = True, threshold: int = 1024) -> None:
        self.use_compression = use_compression
        self.threshold = threshold

    def should_compress(self, payload: str, compress_hint: Optional[bool] = None) -> bool:
        if compress_hint is not None:
            return compress_hint
        return self.use_compression and len(payload.encode("utf-8")) > self.threshold

    def encode(self, value: Any, compress_hint: Optional[bool] = None) -> EncodedPayload:
        payload = serialize(value)
        digest = checksum(payload)
        if self.should_compress(payload, compress_hint):
            return EncodedPayload(compress(payload), digest, True)
        return EncodedPayload(payload, digest, False)

    def decode(self, payload: str, expected_checksum: Optional[str], compressed: bool, *, key: str = "") -> Any:
        text = payload
        if compressed:
            try:
                text = decompress(payload)
            except CacheIntegrityError as exc:
                log.warning("Cache payload failed to decompress, using stored value", key=key, error=str(exc))

        if expected_checksum is not None and checksum(text) != expected_checksum:
            log.warning("Cache checksum mismatch, returning raw value", key=key)
            return text

        try:
            return json.loads(text)
        except ValueError as exc:
            log.warning("Cache payload is not valid JSON, returning raw value", key=key, error=str(exc))
            return text
