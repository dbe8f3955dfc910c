"""Wire time encoding and decoding.

Durations and the end datetime go out as protocol tokens; historical bar
dates come back either as a YYYYMMDD day stamp or as epoch seconds in the
same text field.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta

import pytz

from ibbridge.core.error_handler import InvalidArgument, MalformedData

EPOCH = datetime(1970, 1, 1, tzinfo=pytz.utc)

_MICROS_PER_SECOND = 1_000_000
_MICROS_PER_DAY = 86_400 * _MICROS_PER_SECOND
_MICROS_PER_WEEK = 7 * _MICROS_PER_DAY

MAX_DAYS = 34
MAX_WEEKS = 52

# Integers below this are day stamps (YYYYMMDD), above it epoch seconds
DAY_STAMP_THRESHOLD = 30_000_000

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_DURATION_TOKEN = re.compile(r"^([1-9][0-9]*) ([SDWMY])$")
_INTEGER_TEXT = re.compile(r"^\s*[+-]?[0-9]+\s*$")


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def encode_duration(span: timedelta | str) -> str:
    """Encode a lookback span as the "<n> <unit>" duration token.

    Seconds are used below one day, days up to 34, weeks up to 52. A string
    is taken as an already formed token and only validated.
    """
    if isinstance(span, str):
        token = span.strip()
        if not _DURATION_TOKEN.match(token):
            raise InvalidArgument(f"Malformed duration token {span!r}")
        return token
    if not isinstance(span, timedelta):
        raise InvalidArgument(f"Duration must be a timedelta or token, got {span!r}")

    micros = span // timedelta(microseconds=1)
    if micros < _MICROS_PER_SECOND:
        raise InvalidArgument("span below minimum granularity")
    if micros < _MICROS_PER_DAY:
        return f"{_ceil_div(micros, _MICROS_PER_SECOND)} S"
    days = _ceil_div(micros, _MICROS_PER_DAY)
    if days <= MAX_DAYS:
        return f"{days} D"
    weeks = _ceil_div(micros, _MICROS_PER_WEEK)
    if weeks > MAX_WEEKS:
        raise InvalidArgument("span exceeds 52-week maximum")
    return f"{weeks} W"


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to already be UTC."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)


def format_end_datetime(end: datetime | None) -> str:
    """Render the request end instant as "yyyyMMdd HH:mm:ss UTC".

    None renders as "", which the server reads as now.
    """
    if end is None:
        return ""
    if not isinstance(end, datetime):
        raise InvalidArgument(f"End must be a datetime, got {end!r}")
    u = to_utc(end)
    return (
        f"{u.year:04d}{u.month:02d}{u.day:02d} "
        f"{u.hour:02d}:{u.minute:02d}:{u.second:02d} UTC"
    )


def _parse_int64(text: str) -> int:
    if not isinstance(text, str) or not _INTEGER_TEXT.match(text):
        raise MalformedData(f"Not an integer timestamp: {text!r}", raw=text)
    value = int(text)
    if not (_INT64_MIN <= value <= _INT64_MAX):
        raise MalformedData(f"Timestamp out of 64-bit range: {text!r}", raw=text)
    return value


def _from_epoch(value: int, raw: object) -> datetime:
    try:
        return EPOCH + timedelta(seconds=value)
    except OverflowError as e:
        raise MalformedData(f"Epoch seconds out of range: {raw!r}", raw=raw) from e


def decode_bar_timestamp(text: str) -> datetime:
    """Decode a historical bar date field into an aware UTC datetime."""
    value = _parse_int64(text)
    if value >= DAY_STAMP_THRESHOLD:
        return _from_epoch(value, text)

    stamp = text.strip()
    if len(stamp) < 8:
        raise MalformedData(f"Day stamp too short: {text!r}", raw=text)
    try:
        year, month, day = int(stamp[0:4]), int(stamp[4:6]), int(stamp[6:8])
        return datetime(year, month, day, tzinfo=pytz.utc)
    except ValueError as e:
        raise MalformedData(f"Invalid day stamp {text!r}: {e}", raw=text) from e


def epoch_to_utc(seconds: int | str) -> datetime:
    """Convert epoch seconds (int or integer text) to an aware UTC datetime."""
    if isinstance(seconds, bool):
        raise MalformedData(f"Not an epoch value: {seconds!r}", raw=seconds)
    if isinstance(seconds, int):
        return _from_epoch(seconds, seconds)
    return _from_epoch(_parse_int64(seconds), seconds)


__all__ = [
    "DAY_STAMP_THRESHOLD",
    "EPOCH",
    "encode_duration",
    "format_end_datetime",
    "to_utc",
    "decode_bar_timestamp",
    "epoch_to_utc",
]
