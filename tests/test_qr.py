from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from backoffice.billing.errors import EncodingOverflow, ValidationError
from backoffice.billing.qr import (
    BUSINESS_TZ,
    business_timezone,
    decode_qr_payload,
    encode_qr_payload,
    encode_tlv,
    normalize_timestamp,
)

ISSUED = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


def test_decode_recovers_five_fields_in_tag_order() -> None:
    payload = encode_qr_payload("Acme Contracting", "310000000000003", ISSUED, Decimal("1150"), Decimal("150"))

    assert decode_qr_payload(payload) == [
        (1, "Acme Contracting"),
        (2, "310000000000003"),
        (3, "2025-01-01T03:00:00+03:00"),
        (4, "1150.00"),
        (5, "150.00"),
    ]


def test_buffer_layout_is_tag_length_value_without_separators() -> None:
    payload = encode_qr_payload("A", "1", ISSUED, "115", "15")
    raw = base64.b64decode(payload)

    timestamp = b"2025-01-01T03:00:00+03:00"
    expected = (
        b"\x01\x01A"
        + b"\x02\x011"
        + bytes((3, len(timestamp))) + timestamp
        + b"\x04\x06115.00"
        + b"\x05\x0515.00"
    )
    assert raw == expected


def test_length_byte_counts_utf8_bytes_not_characters() -> None:
    name = "شركة"
    raw = encode_tlv([(1, name)])

    assert raw[1] == len(name.encode("utf-8")) == 8
    assert raw[2:].decode("utf-8") == name


def test_field_of_exactly_255_bytes_is_accepted() -> None:
    raw = encode_tlv([(1, "x" * 255)])
    assert raw[1] == 255


def test_oversized_field_raises_encoding_overflow() -> None:
    with pytest.raises(EncodingOverflow) as exc_info:
        encode_qr_payload("x" * 256, "310000000000003", ISSUED, "1", "0")

    assert exc_info.value.tag == 1
    assert exc_info.value.length == 256
    assert exc_info.value.status_code == 422


def test_missing_seller_identity_is_rejected() -> None:
    with pytest.raises(ValidationError):
        encode_qr_payload("Acme", "", ISSUED, "1", "0")


def test_naive_timestamps_are_treated_as_utc() -> None:
    assert normalize_timestamp(datetime(2025, 6, 30, 22, 15, 7, 999)) == "2025-07-01T01:15:07+03:00"


def test_timestamp_strings_with_z_suffix() -> None:
    assert normalize_timestamp("2025-01-01T00:00:00Z") == "2025-01-01T03:00:00+03:00"


def test_timestamp_uses_configured_offset() -> None:
    assert normalize_timestamp(ISSUED, business_timezone(4)) == "2025-01-01T04:00:00+04:00"
    assert BUSINESS_TZ.utcoffset(None) == timedelta(hours=3)


def test_unparsable_timestamp_is_rejected() -> None:
    with pytest.raises(ValidationError):
        normalize_timestamp("yesterday")


@pytest.mark.parametrize("payload", ["not base64!", base64.b64encode(b"\x01\x05ab").decode()])
def test_decode_rejects_malformed_payloads(payload: str) -> None:
    with pytest.raises(ValidationError):
        decode_qr_payload(payload)
