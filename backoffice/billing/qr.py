"""
backoffice/billing/qr.py

Tax-invoice QR payload (TLV + base64).

Wire format (must be bit-exact):
- five fields, tag order 1..5, no separators
    1 seller name
    2 seller VAT registration number
    3 invoice timestamp (ISO-8601, fixed business UTC offset)
    4 invoice total incl. VAT (decimal string)
    5 VAT total (decimal string)
- each field: 1 tag byte, 1 length byte (UTF-8 byte length), UTF-8 bytes
- the concatenated buffer is base64 encoded (standard alphabet, padded)

A value longer than 255 bytes cannot be described by its length byte and
raises EncodingOverflow. Values are never truncated.
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from typing import List, Tuple, Union

from .errors import EncodingOverflow, ValidationError
from .money import money_str, to_decimal

TAG_SELLER_NAME = 1
TAG_VAT_NUMBER = 2
TAG_TIMESTAMP = 3
TAG_TOTAL_AMOUNT = 4
TAG_VAT_AMOUNT = 5

MAX_FIELD_BYTES = 255

# Business civil time (Arabia Standard Time, no DST).
BUSINESS_TZ = timezone(timedelta(hours=3))


def business_timezone(offset_hours: float) -> tzinfo:
    return timezone(timedelta(hours=offset_hours))


def normalize_timestamp(value: Union[datetime, str], tz: tzinfo = BUSINESS_TZ) -> str:
    """
    Render a timestamp in the business's fixed offset.

    Naive datetimes are taken as UTC. Microseconds are dropped so repeated calls
    for the same logical second give the same string on any host.
    """
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(raw)
        except ValueError:
            raise ValidationError(f"timestamp must be ISO-8601, got {value!r}") from None
    if not isinstance(value, datetime):
        raise ValidationError("timestamp must be a datetime or ISO-8601 string")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).replace(microsecond=0).isoformat()


def _tlv(tag: int, value: str) -> bytes:
    raw = value.encode("utf-8")
    if len(raw) > MAX_FIELD_BYTES:
        raise EncodingOverflow(tag, len(raw))
    return bytes((tag, len(raw))) + raw


def encode_tlv(fields: List[Tuple[int, str]]) -> bytes:
    return b"".join(_tlv(tag, value) for tag, value in fields)


def encode_qr_payload(
    seller_name: str,
    vat_number: str,
    timestamp: Union[datetime, str],
    total_amount: Union[Decimal, int, float, str],
    vat_amount: Union[Decimal, int, float, str],
    *,
    tz: tzinfo = BUSINESS_TZ,
) -> str:
    """Build the base64 TLV payload embedded in the invoice QR code."""
    if not seller_name:
        raise ValidationError("seller name is required")
    if not vat_number:
        raise ValidationError("seller VAT number is required")

    fields = [
        (TAG_SELLER_NAME, seller_name),
        (TAG_VAT_NUMBER, vat_number),
        (TAG_TIMESTAMP, normalize_timestamp(timestamp, tz)),
        (TAG_TOTAL_AMOUNT, money_str(to_decimal(total_amount, field="total_amount"))),
        (TAG_VAT_AMOUNT, money_str(to_decimal(vat_amount, field="vat_amount"))),
    ]
    return base64.b64encode(encode_tlv(fields)).decode("ascii")


def decode_qr_payload(payload: str) -> List[Tuple[int, str]]:
    """Inverse of encode_qr_payload: (tag, value) pairs in buffer order."""
    try:
        buffer = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("QR payload is not valid base64") from None

    fields: List[Tuple[int, str]] = []
    pos = 0
    while pos < len(buffer):
        if pos + 2 > len(buffer):
            raise ValidationError("QR payload truncated in a field header")
        tag, length = buffer[pos], buffer[pos + 1]
        start, end = pos + 2, pos + 2 + length
        if end > len(buffer):
            raise ValidationError(f"QR payload truncated in field tag {tag}")
        try:
            fields.append((tag, buffer[start:end].decode("utf-8")))
        except UnicodeDecodeError:
            raise ValidationError(f"QR field tag {tag} is not UTF-8") from None
        pos = end
    return fields
