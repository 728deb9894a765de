from __future__ import annotations

import copy
import hashlib
import json
import math
import time
from dataclasses import dataclass, field
from typing import Any

MAX_INDEX = (1 << 64) - 1
MAX_TIMESTAMP = (1 << 128) - 1


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def format_float(value: float) -> str:
    """Render a float with the shortest round-trip digits in serde_json's layout.

    Decimal notation is used while the decimal exponent sits in ``[-5, 15]``,
    otherwise ``<digits>e<exp>`` with no ``+`` sign or zero padding
    (``1e16``, ``1.5e-7``). Integral values keep a trailing ``.0``.
    """
    if not math.isfinite(value):
        raise ValueError(f"Non-finite number {value!r} is not valid JSON")
    sign = "-" if math.copysign(1.0, value) < 0 else ""
    if value == 0:
        return f"{sign}0.0"
    mantissa, _, exp_text = repr(abs(value)).partition("e")
    exponent = int(exp_text) if exp_text else 0
    int_part, _, frac_part = mantissa.partition(".")
    if int_part.strip("0"):
        digits = (int_part + frac_part).lstrip("0")
        point = len(int_part.lstrip("0")) + exponent
    else:
        stripped = frac_part.lstrip("0")
        digits = stripped
        point = exponent - (len(frac_part) - len(stripped))
    digits = digits.rstrip("0")
    # value == 0.<digits> * 10**point
    length = len(digits)
    if length <= point <= 16:
        return f"{sign}{digits}{'0' * (point - length)}.0"
    if 0 < point <= 16:
        return f"{sign}{digits[:point]}.{digits[point:]}"
    if -5 < point <= 0:
        return f"{sign}0.{'0' * -point}{digits}"
    if length == 1:
        return f"{sign}{digits}e{point - 1}"
    return f"{sign}{digits[0]}.{digits[1:]}e{point - 1}"


def _dump_value(value: Any) -> str:
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, dict):
        items = []
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"Object keys must be strings, got {type(key).__name__}")
            items.append(f"{json.dumps(key, ensure_ascii=False)}:{_dump_value(item)}")
        return "{" + ",".join(items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_dump_value(item) for item in value) + "]"
    return json.dumps(value, ensure_ascii=False)


def serialize_data(data: dict[str, Any]) -> str:
    # Payload keeps insertion order; only the outer envelope is key-sorted.
    return _dump_value(data)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def message_as_json(message: str) -> dict[str, Any]:
    return {"message": message}


def _coerce_uint(raw: Any, name: str, upper: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"Field '{name}' must be an integer")
    if raw < 0 or raw > upper:
        raise ValueError(f"Field '{name}' is out of range")
    return raw


@dataclass(frozen=True)
class Block:
    index: int
    previous_hash: str
    timestamp: int
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # The payload is owned by the block; callers keep no handle into it.
        object.__setattr__(self, "data", copy.deepcopy(self.data))
        try:
            self.hash_bytes()
        except (TypeError, UnicodeEncodeError) as exc:
            raise ValueError(f"Block {self.index} cannot be hashed: {exc}") from exc

    def hash_payload(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "previous_hash": self.previous_hash,
            "data": serialize_data(self.data),
            "timestamp": str(self.timestamp),
        }

    def hash_bytes(self) -> bytes:
        return canonical_json(self.hash_payload()).encode("utf-8")

    def hash(self) -> str:
        return sha256_hex(self.hash_bytes())

    def generate_next(self, message: str, timestamp: int | None = None) -> "Block":
        return Block(
            index=self.index + 1,
            previous_hash=self.hash(),
            timestamp=now_ms() if timestamp is None else timestamp,
            data=message_as_json(message),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "previous_hash": self.previous_hash,
            "timestamp": self.timestamp,
            "data": copy.deepcopy(self.data),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Block":
        missing = [key for key in ("index", "previous_hash", "timestamp", "data") if key not in data]
        if missing:
            raise ValueError(f"Missing block field(s): {', '.join(missing)}")
        previous_hash = data["previous_hash"]
        if not isinstance(previous_hash, str):
            raise ValueError("Field 'previous_hash' must be a string")
        payload = data["data"]
        if not isinstance(payload, dict):
            raise ValueError("Field 'data' must be a JSON object")
        return cls(
            index=_coerce_uint(data["index"], "index", MAX_INDEX),
            previous_hash=previous_hash,
            timestamp=_coerce_uint(data["timestamp"], "timestamp", MAX_TIMESTAMP),
            data=dict(payload),
        )


def genesis_block(message: str, timestamp: int | None = None) -> Block:
    return Block(
        index=0,
        previous_hash="",
        timestamp=now_ms() if timestamp is None else timestamp,
        data=message_as_json(message),
    )
