"""
Request and reply data holders

Plain dataclasses passed through the facade to the transport and carried
inside domain events. Field names follow Python naming; transports map them
onto their own wire objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ibbridge.domain.wire_codes import ActionSide, OrderStatus, SecurityType


@dataclass(slots=True)
class Contract:
    """Instrument description"""

    symbol: str = ""
    sec_type: SecurityType = SecurityType.NONE
    exchange: str = ""
    currency: str = ""
    con_id: int = 0
    last_trade_date_or_contract_month: str = ""
    strike: float = 0.0
    right: str = ""
    multiplier: str = ""
    primary_exchange: str = ""
    local_symbol: str = ""
    trading_class: str = ""
    include_expired: bool = False

    @classmethod
    def stock(
        cls, symbol: str, exchange: str = "SMART", currency: str = "USD"
    ) -> Contract:
        return cls(
            symbol=symbol,
            sec_type=SecurityType.STOCK,
            exchange=exchange,
            currency=currency,
        )


@dataclass(slots=True)
class Order:
    action: ActionSide = ActionSide.NONE
    total_quantity: float = 0.0
    order_type: str = ""
    lmt_price: float | None = None
    aux_price: float | None = None
    tif: str = ""
    account: str = ""
    order_ref: str = ""
    parent_id: int = 0
    outside_rth: bool = False
    transmit: bool = True


@dataclass(slots=True)
class OrderState:
    status: OrderStatus = OrderStatus.NONE
    init_margin: str = ""
    maint_margin: str = ""
    equity_with_loan: str = ""
    commission: float | None = None
    commission_currency: str = ""
    warning_text: str = ""


@dataclass(slots=True)
class ExecutionFilter:
    """Criteria for an executions request; empty fields match everything"""

    client_id: int = 0
    acct_code: str = ""
    time: str = ""  # "yyyyMMdd HH:mm:ss"
    symbol: str = ""
    sec_type: str = ""
    exchange: str = ""
    side: str = ""


@dataclass(slots=True)
class ScannerSubscription:
    scan_code: str = ""
    instrument: str = ""
    location_code: str = ""
    number_of_rows: int = -1
    above_price: float | None = None
    below_price: float | None = None
    above_volume: int | None = None
    market_cap_above: float | None = None
    market_cap_below: float | None = None
    stock_type_filter: str = ""


@dataclass(slots=True)
class ContractDetails:
    contract: Contract = field(default_factory=Contract)
    market_name: str = ""
    min_tick: float = 0.0
    long_name: str = ""
    industry: str = ""
    category: str = ""
    subcategory: str = ""
    time_zone_id: str = ""
    trading_hours: str = ""
    liquid_hours: str = ""
    raw: Any = None


@dataclass(slots=True)
class Execution:
    exec_id: str = ""
    time: str = ""
    acct_number: str = ""
    exchange: str = ""
    side: str = ""
    shares: float = 0.0
    price: float = 0.0
    perm_id: int = 0
    client_id: int = 0
    order_id: int = 0
    cum_qty: float = 0.0
    avg_price: float = 0.0


@dataclass(slots=True)
class CommissionReport:
    exec_id: str = ""
    commission: float = 0.0
    currency: str = ""
    realized_pnl: float | None = None
    yield_: float | None = None
    yield_redemption_date: int = 0


@dataclass(slots=True)
class DeltaNeutralContract:
    con_id: int = 0
    delta: float = 0.0
    price: float = 0.0
