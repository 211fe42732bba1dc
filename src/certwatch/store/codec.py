from __future__ import annotations

import base64
import binascii
import json
import re
from datetime import datetime, timedelta, timezone
from typing import Union

from certwatch.core.models import StoredValue
from certwatch.utils.errors import DecodeError

_RFC3339_PATTERN = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt](?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d{1,9}))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})$"
)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_SECOND = timedelta(seconds=1)


def parse_timestamp_ns(text: str) -> int:
    """
    Parse an RFC 3339 timestamp as written by Go's time.Time into
    integer nanoseconds since the Unix epoch.

    Up to nine fractional digits are kept exactly.
    """
    match = _RFC3339_PATTERN.match(text)
    if not match:
        raise ValueError(f"not an RFC 3339 timestamp: '{text}'")

    offset = match.group("offset")
    if offset in ("Z", "z"):
        offset = "+00:00"

    whole = datetime.fromisoformat(f"{match.group('date')}T{match.group('time')}{offset}")
    seconds = (whole - _EPOCH) // _ONE_SECOND
    fraction = (match.group("fraction") or "").ljust(9, "0")
    return seconds * 1_000_000_000 + int(fraction)


def decode_stored_value(key: str, raw: Union[str, bytes], value_prefix: str) -> StoredValue:
    """
    Decode one stored certificate component.

    The store value is `value_prefix` followed by a JSON object with a base64
    `Value` and an RFC 3339 `Modified`. A missing prefix is tolerated.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(key, f"value is not UTF-8: {exc}") from exc

    if value_prefix and raw.startswith(value_prefix):
        raw = raw[len(value_prefix):]

    try:
        record = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise DecodeError(key, f"invalid JSON: {exc}") from exc

    if not isinstance(record, dict):
        raise DecodeError(key, "expected a JSON object")
    if "Value" not in record or "Modified" not in record:
        raise DecodeError(key, "record must contain 'Value' and 'Modified'")

    encoded = record["Value"]
    if encoded is None:
        payload = b""
    elif isinstance(encoded, str):
        try:
            payload = base64.b64decode(encoded, validate=True)
        except binascii.Error as exc:
            raise DecodeError(key, f"invalid base64 in 'Value': {exc}") from exc
    else:
        raise DecodeError(key, "'Value' must be a base64 string")

    modified = record["Modified"]
    if not isinstance(modified, str):
        raise DecodeError(key, "'Modified' must be a timestamp string")
    try:
        modified_ns = parse_timestamp_ns(modified)
    except ValueError as exc:
        raise DecodeError(key, f"invalid 'Modified': {exc}") from exc

    return StoredValue(payload=payload, modified_ns=modified_ns)
