"""Unit tests for prefixed ULID helpers."""

from __future__ import annotations

import pytest

from agent_team.domain import ids


def _zero_bytes(size: int) -> bytes:
    return b"\x00" * size


def _ff_bytes(size: int) -> bytes:
    return b"\xff" * size


def test_generate_ulid_no_collision_10000() -> None:
    generated = {ids.generate_ulid() for _ in range(10_000)}
    assert len(generated) == 10_000


def test_ulid_charset_length_and_reject_invalid_chars() -> None:
    ulid_value = ids.generate_ulid(timestamp_ms=123_456, randbytes=_ff_bytes)
    assert len(ulid_value) == ids.ULID_LENGTH
    assert ulid_value == ulid_value.upper()
    assert all(char in ids.CROCKFORD_BASE32_ALPHABET for char in ulid_value)

    ids.validate_ulid(ulid_value.lower())

    with pytest.raises(ValueError, match="ulid length must be"):
        ids.validate_ulid("0" * 25)

    for invalid in ["I" + "0" * 25, "O" + "0" * 25, "*" + "0" * 25]:
        with pytest.raises(ValueError, match="invalid ULID character"):
            ids.validate_ulid(invalid)


def test_ulid_overflow_is_rejected() -> None:
    ids.validate_ulid("7" + "Z" * 25)
    with pytest.raises(ValueError, match="overflow"):
        ids.validate_ulid("8" + "0" * 25)


def test_prefixed_ids_carry_their_prefix() -> None:
    message_id = ids.generate_message_id(timestamp_ms=1, randbytes=_zero_bytes)
    thread_id = ids.generate_thread_id(timestamp_ms=1, randbytes=_zero_bytes)
    session_id = ids.generate_session_id(timestamp_ms=1, randbytes=_zero_bytes)
    event_id = ids.generate_event_id(timestamp_ms=1, randbytes=_zero_bytes)

    assert message_id.startswith("msg-")
    assert thread_id.startswith("thr-")
    assert session_id.startswith("ses-")
    assert event_id.startswith("evt-")

    ids.validate_prefixed_id(message_id, ids.MESSAGE_ID_PREFIX)
    with pytest.raises(ValueError, match="expected prefix"):
        ids.validate_prefixed_id(message_id, ids.THREAD_ID_PREFIX)


def test_short_id_returns_tail() -> None:
    value = ids.generate_session_id(timestamp_ms=1, randbytes=_ff_bytes)
    assert ids.short_id(value) == value[-8:]
    with pytest.raises(ValueError, match="at least 8"):
        ids.short_id("abc")
