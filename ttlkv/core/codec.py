"""Value serialization for stored entries."""

import json
from typing import Any, Protocol

from .exceptions import EncodingError


class Codec(Protocol):
    """Anything that turns values into bytes and back."""

    def encode(self, value: Any) -> bytes: ...

    def decode(self, data: bytes) -> Any: ...


class JsonCodec:
    """UTF-8 JSON codec, the store default."""

    def __init__(self, sort_keys: bool = False):
        self.sort_keys = sort_keys

    def encode(self, value: Any) -> bytes:
        try:
            return json.dumps(value, sort_keys=self.sort_keys,
                              separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise EncodingError(f"cannot serialize {type(value).__name__}: {e}") from e

    def decode(self, data: bytes) -> Any:
        if isinstance(data, memoryview):
            data = data.tobytes()
        try:
            return json.loads(data)
        except (TypeError, ValueError) as e:
            raise EncodingError(f"cannot deserialize stored value: {e}") from e
