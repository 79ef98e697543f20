"""ULID-backed identifiers for messages, threads, sessions, and lifecycle events."""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from typing import Final

CROCKFORD_BASE32_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
ULID_RANDOM_BYTES: Final[int] = 10
ULID_MAX_TIMESTAMP_MS: Final[int] = (1 << 48) - 1
_PREFIX_SEPARATOR: Final[str] = "-"

MESSAGE_ID_PREFIX: Final[str] = "msg"
THREAD_ID_PREFIX: Final[str] = "thr"
SESSION_ID_PREFIX: Final[str] = "ses"
EVENT_ID_PREFIX: Final[str] = "evt"

_DECODE_TABLE: Final[dict[str, int]] = {
    char: index for index, char in enumerate(CROCKFORD_BASE32_ALPHABET)
}

_RandBytes = Callable[[int], bytes]

__all__ = [
    "CROCKFORD_BASE32_ALPHABET",
    "EVENT_ID_PREFIX",
    "MESSAGE_ID_PREFIX",
    "SESSION_ID_PREFIX",
    "THREAD_ID_PREFIX",
    "ULID_LENGTH",
    "generate_event_id",
    "generate_message_id",
    "generate_prefixed_id",
    "generate_session_id",
    "generate_thread_id",
    "generate_ulid",
    "short_id",
    "validate_prefixed_id",
    "validate_ulid",
]


def generate_ulid(
    *,
    timestamp_ms: int | None = None,
    randbytes: _RandBytes | None = None,
) -> str:
    """Generate a ULID as a 26-character uppercase Crockford Base32 string."""
    ts_ms = _resolve_timestamp_ms(timestamp_ms)
    random_bytes = _resolve_random_bytes(randbytes)
    value = (ts_ms << 80) | int.from_bytes(random_bytes, "big")
    return _encode_crockford_base32(value, ULID_LENGTH)


def validate_ulid(s: str) -> None:
    """Validate a ULID and raise ``ValueError`` on failure."""
    if not isinstance(s, str):
        raise ValueError(f"ulid must be a string, got {type(s).__name__}")
    if len(s) != ULID_LENGTH:
        raise ValueError(f"ulid length must be {ULID_LENGTH}, got {len(s)}")
    for index, char in enumerate(s):
        if char.upper() not in _DECODE_TABLE:
            raise ValueError(f"invalid ULID character {char!r} at index {index}")
    if _DECODE_TABLE[s[0].upper()] > 7:
        raise ValueError("ulid overflow: value exceeds maximum 128-bit ULID")


def generate_prefixed_id(
    prefix: str,
    *,
    timestamp_ms: int | None = None,
    randbytes: _RandBytes | None = None,
) -> str:
    """Generate an ID in the form ``<prefix>-<ulid>``."""
    _validate_prefix(prefix)
    ulid = generate_ulid(timestamp_ms=timestamp_ms, randbytes=randbytes)
    return f"{prefix}{_PREFIX_SEPARATOR}{ulid}"


def validate_prefixed_id(id_str: str, expected_prefix: str) -> None:
    """Validate ``<prefix>-<ulid>`` format and enforce ``expected_prefix``."""
    _validate_prefix(expected_prefix)
    if not isinstance(id_str, str):
        raise ValueError(f"prefixed id must be a string, got {type(id_str).__name__}")
    lead = f"{expected_prefix}{_PREFIX_SEPARATOR}"
    if not id_str.startswith(lead):
        raise ValueError(f"expected prefix '{lead}'")
    try:
        validate_ulid(id_str[len(lead) :])
    except ValueError as exc:
        raise ValueError(f"invalid ULID part for prefix '{expected_prefix}': {exc}") from exc


def short_id(id_str: str) -> str:
    """Return the last 8 characters of an ID for compact display."""
    if not isinstance(id_str, str):
        raise ValueError(f"id must be a string, got {type(id_str).__name__}")
    if len(id_str) < 8:
        raise ValueError("id must be at least 8 characters")
    return id_str[-8:]


def generate_message_id(
    *, timestamp_ms: int | None = None, randbytes: _RandBytes | None = None
) -> str:
    return generate_prefixed_id(MESSAGE_ID_PREFIX, timestamp_ms=timestamp_ms, randbytes=randbytes)


def generate_thread_id(
    *, timestamp_ms: int | None = None, randbytes: _RandBytes | None = None
) -> str:
    return generate_prefixed_id(THREAD_ID_PREFIX, timestamp_ms=timestamp_ms, randbytes=randbytes)


def generate_session_id(
    *, timestamp_ms: int | None = None, randbytes: _RandBytes | None = None
) -> str:
    return generate_prefixed_id(SESSION_ID_PREFIX, timestamp_ms=timestamp_ms, randbytes=randbytes)


def generate_event_id(
    *, timestamp_ms: int | None = None, randbytes: _RandBytes | None = None
) -> str:
    return generate_prefixed_id(EVENT_ID_PREFIX, timestamp_ms=timestamp_ms, randbytes=randbytes)


def _resolve_timestamp_ms(timestamp_ms: int | None) -> int:
    resolved = time.time_ns() // 1_000_000 if timestamp_ms is None else timestamp_ms
    if not isinstance(resolved, int):
        raise ValueError(f"timestamp_ms must be an int, got {type(resolved).__name__}")
    if not 0 <= resolved <= ULID_MAX_TIMESTAMP_MS:
        raise ValueError(
            f"timestamp_ms out of range: expected 0..{ULID_MAX_TIMESTAMP_MS}, got {resolved}"
        )
    return resolved


def _resolve_random_bytes(randbytes: _RandBytes | None) -> bytes:
    provider = secrets.token_bytes if randbytes is None else randbytes
    raw = bytes(provider(ULID_RANDOM_BYTES))
    if len(raw) != ULID_RANDOM_BYTES:
        raise ValueError(f"randbytes must return exactly {ULID_RANDOM_BYTES} bytes")
    return raw


def _encode_crockford_base32(value: int, length: int) -> str:
    chars = ["0"] * length
    working = value
    for index in range(length - 1, -1, -1):
        chars[index] = CROCKFORD_BASE32_ALPHABET[working & 0b11111]
        working >>= 5
    if working != 0:
        raise ValueError(f"value does not fit into {length} Crockford Base32 characters")
    return "".join(chars)


def _validate_prefix(prefix: str) -> None:
    if not isinstance(prefix, str) or not prefix:
        raise ValueError("prefix must be a non-empty string")
    if _PREFIX_SEPARATOR in prefix:
        raise ValueError(f"prefix must not contain '{_PREFIX_SEPARATOR}'")
