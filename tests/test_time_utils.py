"""
Tests for duration encoding, end datetime formatting and bar date decoding
"""

from datetime import UTC, datetime, timedelta

import pytest
import pytz

from ibbridge.core.error_handler import InvalidArgument, MalformedData
from ibbridge.utils.time_utils import (
    DAY_STAMP_THRESHOLD,
    decode_bar_timestamp,
    encode_duration,
    epoch_to_utc,
    format_end_datetime,
    to_utc,
)


@pytest.mark.parametrize(
    "span, expected",
    [
        (timedelta(seconds=1), "1 S"),
        (timedelta(seconds=1.2), "2 S"),
        (timedelta(seconds=59), "59 S"),
        (timedelta(seconds=86399), "86399 S"),
        (timedelta(seconds=86400), "1 D"),
        (timedelta(days=1, seconds=1), "2 D"),
        (timedelta(days=2), "2 D"),
        (timedelta(days=34), "34 D"),
        (timedelta(days=35), "5 W"),
        (timedelta(days=36), "6 W"),
        (timedelta(weeks=52), "52 W"),
    ],
)
def test_encode_duration_thresholds(span, expected):
    assert encode_duration(span) == expected


def test_encode_duration_below_one_second():
    with pytest.raises(InvalidArgument, match="minimum granularity"):
        encode_duration(timedelta(milliseconds=500))
    with pytest.raises(InvalidArgument):
        encode_duration(timedelta(0))
    with pytest.raises(InvalidArgument):
        encode_duration(timedelta(seconds=-5))


def test_encode_duration_above_52_weeks():
    with pytest.raises(InvalidArgument, match="52-week"):
        encode_duration(timedelta(weeks=53))
    with pytest.raises(InvalidArgument):
        encode_duration(timedelta(weeks=52, seconds=1))


def test_encode_duration_accepts_preformed_token():
    assert encode_duration("2 D") == "2 D"
    assert encode_duration("  3 W ") == "3 W"
    assert encode_duration("1 Y") == "1 Y"


@pytest.mark.parametrize("token", ["", "2D", "0 D", "-1 D", "2 days", "1.5 S", "D 2"])
def test_encode_duration_rejects_malformed_token(token):
    with pytest.raises(InvalidArgument):
        encode_duration(token)


def test_encode_duration_rejects_other_types():
    with pytest.raises(InvalidArgument):
        encode_duration(3600)  # type: ignore[arg-type]


def test_format_end_datetime_utc():
    end = datetime(2023, 6, 15, 0, 0, 0, tzinfo=UTC)
    assert format_end_datetime(end) == "20230615 00:00:00 UTC"


def test_format_end_datetime_converts_to_utc_first():
    ny = pytz.timezone("America/New_York")
    local = ny.localize(datetime(2023, 6, 14, 20, 0, 0))
    assert format_end_datetime(local) == "20230615 00:00:00 UTC"
    assert format_end_datetime(local) == format_end_datetime(local.astimezone(UTC))


def test_format_end_datetime_naive_is_utc():
    naive = datetime(2024, 2, 29, 9, 5, 7)
    assert format_end_datetime(naive) == "20240229 09:05:07 UTC"


def test_format_end_datetime_zero_pads_year():
    assert format_end_datetime(datetime(999, 1, 2, 3, 4, 5)) == "09990102 03:04:05 UTC"


def test_format_end_datetime_none_means_now():
    assert format_end_datetime(None) == ""


def test_format_end_datetime_rejects_non_datetime():
    with pytest.raises(InvalidArgument):
        format_end_datetime("2023-06-15")  # type: ignore[arg-type]


def test_to_utc_keeps_instant():
    tokyo = pytz.timezone("Asia/Tokyo")
    local = tokyo.localize(datetime(2023, 6, 15, 9, 0, 0))
    converted = to_utc(local)
    assert converted == local
    assert converted.utcoffset() == timedelta(0)


def test_decode_day_stamp():
    assert decode_bar_timestamp("20090101") == datetime(2009, 1, 1, tzinfo=UTC)
    assert decode_bar_timestamp(" 20230615 ") == datetime(2023, 6, 15, tzinfo=UTC)


def test_decode_epoch_seconds():
    assert decode_bar_timestamp("1230768000") == datetime(2009, 1, 1, tzinfo=UTC)
    assert decode_bar_timestamp("1686787200") == datetime(2023, 6, 15, tzinfo=UTC)


def test_decode_threshold_boundary():
    stamp = decode_bar_timestamp(str(DAY_STAMP_THRESHOLD))
    assert stamp == datetime(1970, 1, 1, tzinfo=UTC) + timedelta(
        seconds=DAY_STAMP_THRESHOLD
    )
    # just below: positional day stamp, year 2999 is still a valid date
    assert decode_bar_timestamp("29991231") == datetime(2999, 12, 31, tzinfo=UTC)


@pytest.mark.parametrize("text", ["", "abc", "2023-06-15", "20230615 09:30:00", "1.5"])
def test_decode_non_integer_is_malformed(text):
    with pytest.raises(MalformedData):
        decode_bar_timestamp(text)


@pytest.mark.parametrize("text", ["20231301", "20230230", "20230600", "1234"])
def test_decode_invalid_day_stamp_is_malformed(text):
    with pytest.raises(MalformedData):
        decode_bar_timestamp(text)


def test_decode_out_of_range_epoch_is_malformed():
    with pytest.raises(MalformedData):
        decode_bar_timestamp(str(2**62))
    with pytest.raises(MalformedData):
        decode_bar_timestamp(str(2**64))


def test_malformed_data_carries_raw_text():
    with pytest.raises(MalformedData) as exc_info:
        decode_bar_timestamp("garbage")
    assert exc_info.value.raw == "garbage"


def test_epoch_to_utc_accepts_int_and_text():
    assert epoch_to_utc(0) == datetime(1970, 1, 1, tzinfo=UTC)
    assert epoch_to_utc("1686787200") == datetime(2023, 6, 15, tzinfo=UTC)
    with pytest.raises(MalformedData):
        epoch_to_utc(True)
