"""Wire-format helper CLI.

Encodes duration tokens and end datetimes the way the adapter sends them,
decodes bar timestamps the way it receives them, and looks up error codes
and enum wire values.

Examples:
    ib-wire duration 172800
    ib-wire end-datetime 2023-06-15T00:00:00+00:00
    ib-wire decode-date 1686787200
    ib-wire --describe
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, NoReturn

import click

from ibbridge.core.error_handler import AdapterError
from ibbridge.domain import wire_codes
from ibbridge.tools._cli_helpers import print_json
from ibbridge.utils.time_utils import (
    decode_bar_timestamp,
    encode_duration,
    format_end_datetime,
)

ENUM_TABLES: dict[str, type] = {
    "bar_size": wire_codes.BarSize,
    "what_to_show": wire_codes.WhatToShow,
    "tick_type": wire_codes.TickType,
    "generic_tick": wire_codes.GenericTickType,
    "order_status": wire_codes.OrderStatus,
    "market_data_type": wire_codes.MarketDataType,
    "sec_type": wire_codes.SecurityType,
    "action": wire_codes.ActionSide,
    "account_tag": wire_codes.AccountSummaryTag,
    "error_code": wire_codes.ErrorCode,
}


def tool_describe() -> dict[str, Any]:
    return {
        "name": "wire_tool",
        "description": "Encode and decode IB wire values (durations, dates, codes).",
        "inputs": {
            "duration": {"type": "str", "required": True},
            "end-datetime": {"type": "str", "required": False},
            "decode-date": {"type": "str", "required": True},
            "error-code": {"type": "int", "required": True},
            "codes": {"type": "str", "required": True},
            "--describe": {"type": "flag", "required": False},
        },
        "outputs": {"stdout": "JSON result"},
        "dependencies": ["pytz", "click"],
        "examples": [
            "ib-wire duration 172800",
            "ib-wire end-datetime 2023-06-15T00:00:00+00:00",
            "ib-wire decode-date 20230615",
            "ib-wire codes bar_size",
        ],
    }


def _fail(exc: AdapterError) -> NoReturn:
    raise click.ClickException(exc.message)


@click.group(invoke_without_command=True)
@click.option("--describe", is_flag=True, help="Print tool metadata as JSON")
@click.pass_context
def cli(ctx: click.Context, describe: bool) -> None:
    """IB wire-format helpers."""
    if describe:
        print_json(tool_describe())
        ctx.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("span")
def duration(span: str) -> None:
    """Encode SPAN (whole seconds, or a token like '2 D') as a duration string."""
    value: timedelta | str
    value = timedelta(seconds=int(span)) if span.strip().isdigit() else span
    try:
        token = encode_duration(value)
    except AdapterError as exc:
        _fail(exc)
    print_json({"input": span, "duration": token})


@cli.command("end-datetime")
@click.argument("value", required=False)
def end_datetime(value: str | None) -> None:
    """Format an ISO datetime (naive means UTC) as an end datetime string."""
    try:
        end = datetime.fromisoformat(value) if value else None
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="VALUE") from exc
    print_json({"input": value, "end_datetime": format_end_datetime(end)})


@cli.command("decode-date")
@click.argument("text")
def decode_date(text: str) -> None:
    """Decode a bar date field (epoch seconds or yyyyMMdd)."""
    try:
        stamp = decode_bar_timestamp(text)
    except AdapterError as exc:
        _fail(exc)
    print_json({"input": text, "utc": stamp.isoformat()})


@cli.command("error-code")
@click.argument("code", type=int)
def error_code(code: int) -> None:
    """Describe a numeric error code."""
    known = wire_codes.describe_error_code(code)
    print_json(
        {
            "code": code,
            "name": known.name if known is not None else None,
            "warning": wire_codes.is_warning_code(code),
            "connectivity": wire_codes.is_connectivity_code(code),
        }
    )


@cli.command()
@click.argument("table", type=click.Choice(sorted(ENUM_TABLES)))
def codes(table: str) -> None:
    """List the wire values of an enum table."""
    enum_cls = ENUM_TABLES[table]
    print_json({"table": table, "values": {m.name: m.value for m in enum_cls}})


def main() -> None:  # pragma: no cover
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
