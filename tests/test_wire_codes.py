"""
Tests for the enum <-> wire value tables
"""

from enum import Enum

import pytest

from ibbridge.core.error_handler import InvalidArgument, UnknownEnumValue
from ibbridge.domain import wire_codes
from ibbridge.domain.wire_codes import (
    AccountSummaryTag,
    ActionSide,
    BarSize,
    ErrorCode,
    GenericTickType,
    MarketDataType,
    OrderStatus,
    SecurityType,
    TickType,
    WhatToShow,
    decode,
    encode,
    encode_flags,
)

ALL_TABLES = [
    BarSize,
    WhatToShow,
    wire_codes.RealTimeBarType,
    TickType,
    GenericTickType,
    OrderStatus,
    MarketDataType,
    wire_codes.MarketDepthOperation,
    wire_codes.MarketDepthSide,
    wire_codes.NewsType,
    wire_codes.FADataType,
    wire_codes.ExerciseAction,
    wire_codes.ServerLogLevel,
    SecurityType,
    ActionSide,
    AccountSummaryTag,
]


@pytest.mark.parametrize("table", ALL_TABLES, ids=lambda t: t.__name__)
def test_every_entry_round_trips(table: type[Enum]):
    for member in table:
        assert decode(table, encode(member)) is member


@pytest.mark.parametrize("table", ALL_TABLES, ids=lambda t: t.__name__)
def test_wire_values_are_unique(table: type[Enum]):
    wire = [encode(m) for m in table]
    assert len(wire) == len(set(wire))


def test_known_wire_tokens():
    assert encode(BarSize.ONE_HOUR) == "1 hour"
    assert encode(BarSize.FIVE_SECONDS) == "5 secs"
    assert encode(WhatToShow.BID_ASK) == "BID_ASK"
    assert encode(ActionSide.SHORT_SELL) == "SSHORT"
    assert encode(TickType.LAST) == "4"
    assert encode(GenericTickType(233)) == "233"


def test_decode_accepts_int_and_text_for_int_tables():
    assert decode(TickType, 1) is TickType.BID
    assert decode(TickType, "1") is TickType.BID
    assert decode(MarketDataType, 3) is MarketDataType.DELAYED


def test_decode_passes_members_through():
    assert decode(BarSize, BarSize.ONE_DAY) is BarSize.ONE_DAY


def test_unknown_value_carries_raw():
    with pytest.raises(UnknownEnumValue) as exc_info:
        decode(BarSize, "7 mins")
    assert exc_info.value.raw == "7 mins"
    assert exc_info.value.enum_name == "BarSize"


@pytest.mark.parametrize("raw", [999, "999", 1.0, True, object()])
def test_decode_never_coerces(raw):
    with pytest.raises(UnknownEnumValue):
        decode(TickType, raw)


def test_empty_maps_to_none_sentinel_only_where_defined():
    assert decode(OrderStatus, "") is OrderStatus.NONE
    assert decode(SecurityType, None) is SecurityType.NONE
    assert decode(ActionSide, "") is ActionSide.NONE
    with pytest.raises(UnknownEnumValue):
        decode(BarSize, "")
    with pytest.raises(UnknownEnumValue):
        decode(TickType, None)


def test_decode_order_status_text():
    assert decode(OrderStatus, "Filled") is OrderStatus.FILLED
    assert decode(OrderStatus, "PreSubmitted") is OrderStatus.PRE_SUBMITTED


def test_encode_rejects_non_members():
    with pytest.raises(InvalidArgument):
        encode("TRADES")  # type: ignore[arg-type]


def test_encode_flags_uses_table_order_without_duplicates():
    tags = [
        AccountSummaryTag.BUYING_POWER,
        AccountSummaryTag.ACCOUNT_TYPE,
        AccountSummaryTag.NET_LIQUIDATION,
        AccountSummaryTag.BUYING_POWER,
    ]
    assert encode_flags(tags) == "AccountType,NetLiquidation,BuyingPower"


def test_encode_flags_int_table():
    ticks = [GenericTickType(233), GenericTickType(100), GenericTickType(233)]
    assert encode_flags(ticks, GenericTickType) == "100,233"


def test_encode_flags_empty_and_single():
    assert encode_flags([]) == ""
    assert encode_flags([AccountSummaryTag.LEVERAGE]) == "Leverage"


def test_encode_flags_rejects_mixed_tables():
    with pytest.raises(InvalidArgument):
        encode_flags([AccountSummaryTag.LEVERAGE, BarSize.ONE_DAY])


def test_error_code_helpers():
    known = wire_codes.describe_error_code(162)
    assert known is ErrorCode.HISTORICAL_DATA_SERVICE_ERROR
    assert wire_codes.describe_error_code(12345) is None
    assert wire_codes.is_warning_code(2104)
    assert not wire_codes.is_warning_code(200)
    assert wire_codes.is_warning_code(10167)
    assert not wire_codes.is_warning_code(10168)
    assert wire_codes.is_connectivity_code(1100)
    assert not wire_codes.is_connectivity_code(2104)
