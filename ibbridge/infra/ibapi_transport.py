#!/usr/bin/env python3
# ruff: noqa: N802, N803  # Preserve vendor callback names/args
"""Transport over the official ``ibapi`` client.

``EClient`` owns the socket and runs its reader loop in a daemon thread.
``_BridgeWrapper`` receives the vendor callbacks on that thread, converts
vendor objects into our dataclasses and forwards each callback to the bound
sink in arrival order.

Historical bars are buffered per request and replayed with their record
index and total once ``historicalDataEnd`` arrives, since the vendor
callback carries neither.

Import this module only after ``ibapi_available()`` returned True.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from ibapi.client import EClient
from ibapi.common import UNSET_DOUBLE, BarData
from ibapi.contract import Contract as IBContract
from ibapi.execution import ExecutionFilter as IBExecutionFilter
from ibapi.order import Order as IBOrder
from ibapi.scanner import ScannerSubscription as IBScannerSubscription
from ibapi.wrapper import EWrapper

from ibbridge.domain.models import (
    CommissionReport,
    Contract,
    ContractDetails,
    DeltaNeutralContract,
    Execution,
    ExecutionFilter,
    Order,
    OrderState,
    ScannerSubscription,
)
from ibbridge.domain.wire_codes import (
    ActionSide,
    OrderStatus,
    SecurityType,
    decode,
    encode,
    is_warning_code,
)
from ibbridge.infra._ib_availability import require_ibapi
from ibbridge.infra.transport import CallbackSink

logger = logging.getLogger(__name__)


def _unset_to_none(value: Any) -> float | None:
    if value is None or value == UNSET_DOUBLE:
        return None
    return float(value)


# ---------------------------------------------------------------------------
# Model conversion
# ---------------------------------------------------------------------------


def to_ib_contract(contract: Contract) -> IBContract:
    c = IBContract()
    c.conId = contract.con_id
    c.symbol = contract.symbol
    c.secType = encode(contract.sec_type)
    c.lastTradeDateOrContractMonth = contract.last_trade_date_or_contract_month
    c.strike = contract.strike
    c.right = contract.right
    c.multiplier = contract.multiplier
    c.exchange = contract.exchange
    c.primaryExchange = contract.primary_exchange
    c.currency = contract.currency
    c.localSymbol = contract.local_symbol
    c.tradingClass = contract.trading_class
    c.includeExpired = contract.include_expired
    return c


def from_ib_contract(c: IBContract) -> Contract:
    return Contract(
        symbol=c.symbol,
        sec_type=decode(SecurityType, c.secType),
        exchange=c.exchange,
        currency=c.currency,
        con_id=c.conId,
        last_trade_date_or_contract_month=c.lastTradeDateOrContractMonth,
        strike=float(c.strike),
        right=c.right,
        multiplier=str(c.multiplier),
        primary_exchange=c.primaryExchange,
        local_symbol=c.localSymbol,
        trading_class=c.tradingClass,
        include_expired=bool(c.includeExpired),
    )


def to_ib_order(order: Order) -> IBOrder:
    o = IBOrder()
    o.action = encode(order.action)
    o.totalQuantity = order.total_quantity
    o.orderType = order.order_type
    if order.lmt_price is not None:
        o.lmtPrice = order.lmt_price
    if order.aux_price is not None:
        o.auxPrice = order.aux_price
    o.tif = order.tif
    o.account = order.account
    o.orderRef = order.order_ref
    o.parentId = order.parent_id
    o.outsideRth = order.outside_rth
    o.transmit = order.transmit
    return o


def from_ib_order(o: IBOrder) -> Order:
    return Order(
        action=decode(ActionSide, o.action),
        total_quantity=float(o.totalQuantity),
        order_type=o.orderType,
        lmt_price=_unset_to_none(o.lmtPrice),
        aux_price=_unset_to_none(o.auxPrice),
        tif=o.tif,
        account=o.account,
        order_ref=o.orderRef,
        parent_id=o.parentId,
        outside_rth=bool(o.outsideRth),
        transmit=bool(o.transmit),
    )


def from_ib_order_state(s: Any) -> OrderState:
    return OrderState(
        status=decode(OrderStatus, s.status),
        init_margin=str(getattr(s, "initMarginAfter", "")),
        maint_margin=str(getattr(s, "maintMarginAfter", "")),
        equity_with_loan=str(getattr(s, "equityWithLoanAfter", "")),
        commission=_unset_to_none(getattr(s, "commission", None)),
        commission_currency=getattr(s, "commissionCurrency", ""),
        warning_text=getattr(s, "warningText", ""),
    )


def to_ib_execution_filter(flt: ExecutionFilter) -> IBExecutionFilter:
    f = IBExecutionFilter()
    f.clientId = flt.client_id
    f.acctCode = flt.acct_code
    f.time = flt.time
    f.symbol = flt.symbol
    f.secType = flt.sec_type
    f.exchange = flt.exchange
    f.side = flt.side
    return f


def to_ib_scanner_subscription(sub: ScannerSubscription) -> IBScannerSubscription:
    s = IBScannerSubscription()
    s.scanCode = sub.scan_code
    s.instrument = sub.instrument
    s.locationCode = sub.location_code
    s.numberOfRows = sub.number_of_rows
    if sub.above_price is not None:
        s.abovePrice = sub.above_price
    if sub.below_price is not None:
        s.belowPrice = sub.below_price
    if sub.above_volume is not None:
        s.aboveVolume = sub.above_volume
    if sub.market_cap_above is not None:
        s.marketCapAbove = sub.market_cap_above
    if sub.market_cap_below is not None:
        s.marketCapBelow = sub.market_cap_below
    s.stockTypeFilter = sub.stock_type_filter
    return s


def from_ib_contract_details(d: Any) -> ContractDetails:
    return ContractDetails(
        contract=from_ib_contract(d.contract),
        market_name=d.marketName,
        min_tick=float(d.minTick),
        long_name=d.longName,
        industry=d.industry,
        category=d.category,
        subcategory=d.subcategory,
        time_zone_id=d.timeZoneId,
        trading_hours=d.tradingHours,
        liquid_hours=d.liquidHours,
        raw=d,
    )


def from_ib_execution(e: Any) -> Execution:
    return Execution(
        exec_id=e.execId,
        time=e.time,
        acct_number=e.acctNumber,
        exchange=e.exchange,
        side=e.side,
        shares=float(e.shares),
        price=float(e.price),
        perm_id=e.permId,
        client_id=e.clientId,
        order_id=e.orderId,
        cum_qty=float(e.cumQty),
        avg_price=float(e.avgPrice),
    )


def from_ib_commission_report(r: Any) -> CommissionReport:
    return CommissionReport(
        exec_id=r.execId,
        commission=float(r.commission),
        currency=r.currency,
        realized_pnl=_unset_to_none(r.realizedPNL),
        yield_=_unset_to_none(r.yield_),
        yield_redemption_date=r.yieldRedemptionDate,
    )


# ---------------------------------------------------------------------------
# Wrapper
# ---------------------------------------------------------------------------


class _BridgeWrapper(EWrapper):
    """Receives vendor callbacks and forwards them to the transport."""

    def __init__(self, transport: IbapiTransport) -> None:
        EWrapper.__init__(self)
        self._t = transport

    def connectionClosed(self) -> None:
        self._t.forward("connectionClosed")

    def error(self, reqId: int, errorCode: int, errorString: str, *args: Any) -> None:
        # Newer client versions insert an error timestamp before the code
        if args and isinstance(errorString, int):
            errorCode, errorString = errorString, args[0]
        if not is_warning_code(int(errorCode)):
            self._t.drop_bars(reqId)
        self._t.forward("error", reqId, errorCode, errorString)

    def currentTime(self, time: int) -> None:
        self._t.forward("currentTime", time)

    def nextValidId(self, orderId: int) -> None:
        self._t.forward("nextValidId", orderId)

    def managedAccounts(self, accountsList: str) -> None:
        self._t.forward("managedAccounts", accountsList)

    def scannerParameters(self, xml: str) -> None:
        self._t.forward("scannerParameters", xml)

    def updateNewsBulletin(
        self, msgId: int, msgType: int, newsMessage: str, originExch: str
    ) -> None:
        self._t.forward("updateNewsBulletin", msgId, msgType, newsMessage, originExch)

    def receiveFA(self, faData: int, cxml: str) -> None:
        self._t.forward("receiveFA", faData, cxml)

    def updateAccountValue(
        self, key: str, val: str, currency: str, accountName: str
    ) -> None:
        self._t.forward("updateAccountValue", key, val, currency, accountName)

    def updatePortfolio(
        self,
        contract: IBContract,
        position: Any,
        marketPrice: float,
        marketValue: float,
        averageCost: float,
        unrealizedPNL: float,
        realizedPNL: float,
        accountName: str,
    ) -> None:
        self._t.forward_converted(
            "updatePortfolio",
            lambda: (
                from_ib_contract(contract),
                position,
                marketPrice,
                marketValue,
                averageCost,
                unrealizedPNL,
                realizedPNL,
                accountName,
            ),
        )

    def updateAccountTime(self, timeStamp: str) -> None:
        self._t.forward("updateAccountTime", timeStamp)

    def accountDownloadEnd(self, accountName: str) -> None:
        self._t.forward("accountDownloadEnd", accountName)

    def orderStatus(
        self,
        orderId: int,
        status: str,
        filled: Any,
        remaining: Any,
        avgFillPrice: float,
        permId: int,
        parentId: int,
        lastFillPrice: float,
        clientId: int,
        whyHeld: str,
        *args: Any,
    ) -> None:
        self._t.forward(
            "orderStatus",
            orderId,
            status,
            filled,
            remaining,
            avgFillPrice,
            permId,
            parentId,
            lastFillPrice,
            clientId,
            whyHeld,
        )

    def openOrder(
        self, orderId: int, contract: IBContract, order: IBOrder, orderState: Any
    ) -> None:
        self._t.forward_converted(
            "openOrder",
            lambda: (
                orderId,
                from_ib_contract(contract),
                from_ib_order(order),
                from_ib_order_state(orderState),
            ),
        )

    def openOrderEnd(self) -> None:
        self._t.forward("openOrderEnd")

    def commissionReport(self, commissionReport: Any) -> None:
        self._t.forward_converted(
            "commissionReport", lambda: (from_ib_commission_report(commissionReport),)
        )

    def position(
        self, account: str, contract: IBContract, position: Any, avgCost: float
    ) -> None:
        self._t.forward_converted(
            "position",
            lambda: (account, from_ib_contract(contract), position, avgCost),
        )

    def positionEnd(self) -> None:
        self._t.forward("positionEnd")

    # request scope
    def tickPrice(self, reqId: int, tickType: int, price: float, attrib: Any) -> None:
        can_auto = bool(getattr(attrib, "canAutoExecute", False))
        self._t.forward("tickPrice", reqId, tickType, price, can_auto)

    def tickSize(self, reqId: int, tickType: int, size: Any) -> None:
        self._t.forward("tickSize", reqId, tickType, size)

    def tickString(self, reqId: int, tickType: int, value: str) -> None:
        self._t.forward("tickString", reqId, tickType, value)

    def tickGeneric(self, reqId: int, tickType: int, value: float) -> None:
        self._t.forward("tickGeneric", reqId, tickType, value)

    def tickEFP(
        self,
        reqId: int,
        tickType: int,
        basisPoints: float,
        formattedBasisPoints: str,
        totalDividends: float,
        holdDays: int,
        futureLastTradeDate: str,
        dividendImpact: float,
        dividendsToLastTradeDate: float,
    ) -> None:
        self._t.forward(
            "tickEFP",
            reqId,
            tickType,
            basisPoints,
            formattedBasisPoints,
            totalDividends,
            holdDays,
            futureLastTradeDate,
            dividendImpact,
            dividendsToLastTradeDate,
        )

    def tickOptionComputation(self, reqId: int, tickType: int, *args: Any) -> None:
        # Newer client versions insert a tickAttrib before the values
        values = args[1:] if len(args) == 9 else args
        self._t.forward(
            "tickOptionComputation",
            reqId,
            tickType,
            *(_unset_to_none(v) for v in values),
        )

    def tickSnapshotEnd(self, reqId: int) -> None:
        self._t.forward("tickSnapshotEnd", reqId)

    def marketDataType(self, reqId: int, marketDataType: int) -> None:
        self._t.forward("marketDataType", reqId, marketDataType)

    def deltaNeutralValidation(self, reqId: int, deltaNeutralContract: Any) -> None:
        self._t.forward(
            "deltaNeutralValidation",
            reqId,
            DeltaNeutralContract(
                con_id=deltaNeutralContract.conId,
                delta=float(deltaNeutralContract.delta),
                price=float(deltaNeutralContract.price),
            ),
        )

    def contractDetails(self, reqId: int, contractDetails: Any) -> None:
        self._t.forward_converted(
            "contractDetails",
            lambda: (reqId, from_ib_contract_details(contractDetails)),
        )

    def contractDetailsEnd(self, reqId: int) -> None:
        self._t.forward("contractDetailsEnd", reqId)

    def execDetails(self, reqId: int, contract: IBContract, execution: Any) -> None:
        self._t.forward_converted(
            "execDetails",
            lambda: (reqId, from_ib_contract(contract), from_ib_execution(execution)),
        )

    def execDetailsEnd(self, reqId: int) -> None:
        self._t.forward("execDetailsEnd", reqId)

    def fundamentalData(self, reqId: int, data: str) -> None:
        self._t.forward("fundamentalData", reqId, data)

    def historicalData(self, reqId: int, bar: BarData) -> None:
        self._t.buffer_bar(reqId, bar)

    def historicalDataEnd(self, reqId: int, start: str, end: str) -> None:
        self._t.replay_bars(reqId, start, end)

    def updateMktDepth(
        self,
        reqId: int,
        position: int,
        operation: int,
        side: int,
        price: float,
        size: Any,
    ) -> None:
        self._t.forward(
            "updateMktDepth", reqId, position, operation, side, price, size
        )

    def updateMktDepthL2(
        self,
        reqId: int,
        position: int,
        marketMaker: str,
        operation: int,
        side: int,
        price: float,
        size: Any,
        *args: Any,
    ) -> None:
        self._t.forward(
            "updateMktDepthL2",
            reqId,
            position,
            marketMaker,
            operation,
            side,
            price,
            size,
        )

    def realtimeBar(
        self,
        reqId: int,
        time: int,
        open_: float,
        high: float,
        low: float,
        close: float,
        volume: Any,
        wap: Any,
        count: int,
    ) -> None:
        self._t.forward(
            "realtimeBar", reqId, time, open_, high, low, close, volume, wap, count
        )

    def scannerData(
        self,
        reqId: int,
        rank: int,
        contractDetails: Any,
        distance: str,
        benchmark: str,
        projection: str,
        legsStr: str,
    ) -> None:
        self._t.forward_converted(
            "scannerData",
            lambda: (
                reqId,
                rank,
                from_ib_contract_details(contractDetails),
                distance,
                benchmark,
                projection,
                legsStr,
            ),
        )

    def scannerDataEnd(self, reqId: int) -> None:
        self._t.forward("scannerDataEnd", reqId)

    def accountSummary(
        self, reqId: int, account: str, tag: str, value: str, currency: str
    ) -> None:
        self._t.forward("accountSummary", reqId, account, tag, value, currency)

    def accountSummaryEnd(self, reqId: int) -> None:
        self._t.forward("accountSummaryEnd", reqId)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class IbapiTransport:
    """``Transport`` implementation on top of ``ibapi.client.EClient``."""

    def __init__(self, reader_thread_name: str = "ibapi-reader") -> None:
        require_ibapi()
        self._sink: CallbackSink | None = None
        self._wrapper = _BridgeWrapper(self)
        self._client = EClient(self._wrapper)
        self._reader_name = reader_thread_name
        self._reader: threading.Thread | None = None
        self._bars: dict[int, list[tuple[Any, ...]]] = {}

    # -------------- inbound -----------------
    def bind(self, sink: CallbackSink) -> None:
        self._sink = sink

    def forward(self, message: str, *args: Any) -> None:
        sink = self._sink
        if sink is None:
            logger.debug("Dropping %s: no sink bound", message)
            return
        sink.handle(message, *args)

    def forward_converted(
        self, message: str, build: Callable[[], tuple[Any, ...]]
    ) -> None:
        """Convert vendor objects, reporting failures instead of raising."""
        try:
            args = build()
        except Exception as e:
            if self._sink is not None:
                self._sink.report(e, message)
            else:
                logger.warning("Failed to convert %s: %s", message, e)
            return
        self.forward(message, *args)

    # Called on the reader thread only
    def buffer_bar(self, reqId: int, bar: BarData) -> None:
        self._bars.setdefault(reqId, []).append(
            (
                bar.date,
                bar.open,
                bar.high,
                bar.low,
                bar.close,
                bar.volume,
                bar.barCount,
                bar.average,
            )
        )

    def replay_bars(self, reqId: int, start: str, end: str) -> None:
        bars = self._bars.pop(reqId, [])
        total = len(bars)
        for index, (date, o, h, low, c, vol, count, wap) in enumerate(bars, 1):
            self.forward(
                "historicalData",
                reqId,
                date,
                o,
                h,
                low,
                c,
                vol,
                count,
                wap,
                False,
                index,
                total,
            )
        self.forward("historicalDataEnd", reqId, start, end)

    def drop_bars(self, reqId: int) -> None:
        self._bars.pop(reqId, None)

    # -------------- connection -----------------
    def eConnect(self, host: str, port: int, clientId: int) -> None:
        self._client.connect(host, port, clientId)
        self._reader = threading.Thread(
            target=self._client.run, name=self._reader_name, daemon=True
        )
        self._reader.start()

    def eDisconnect(self) -> None:
        self._client.disconnect()
        self._bars.clear()
        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=5.0)
        self._reader = None

    def isConnected(self) -> bool:
        return bool(self._client.isConnected())

    # -------------- market data -----------------
    def reqMktData(
        self, reqId: int, contract: Contract, genericTickList: str, snapshot: bool
    ) -> None:
        self._client.reqMktData(
            reqId, to_ib_contract(contract), genericTickList, snapshot, False, []
        )

    def cancelMktData(self, reqId: int) -> None:
        self._client.cancelMktData(reqId)

    def reqMarketDataType(self, marketDataType: int) -> None:
        self._client.reqMarketDataType(marketDataType)

    def reqMktDepth(self, reqId: int, contract: Contract, numRows: int) -> None:
        self._client.reqMktDepth(reqId, to_ib_contract(contract), numRows, False, [])

    def cancelMktDepth(self, reqId: int) -> None:
        self._client.cancelMktDepth(reqId, False)

    # -------------- bars -----------------
    def reqHistoricalData(
        self,
        reqId: int,
        contract: Contract,
        endDateTime: str,
        durationStr: str,
        barSizeSetting: str,
        whatToShow: str,
        useRTH: int,
        formatDate: int,
    ) -> None:
        # a reused id starts with an empty buffer
        self.drop_bars(reqId)
        self._client.reqHistoricalData(
            reqId,
            to_ib_contract(contract),
            endDateTime,
            durationStr,
            barSizeSetting,
            whatToShow,
            useRTH,
            formatDate,
            False,
            [],
        )

    def cancelHistoricalData(self, reqId: int) -> None:
        self.drop_bars(reqId)
        self._client.cancelHistoricalData(reqId)

    def reqRealTimeBars(
        self,
        reqId: int,
        contract: Contract,
        barSize: int,
        whatToShow: str,
        useRTH: bool,
    ) -> None:
        self._client.reqRealTimeBars(
            reqId, to_ib_contract(contract), barSize, whatToShow, useRTH, []
        )

    def cancelRealTimeBars(self, reqId: int) -> None:
        self._client.cancelRealTimeBars(reqId)

    # -------------- contracts, scanners, fundamentals -----------------
    def reqContractDetails(self, reqId: int, contract: Contract) -> None:
        self._client.reqContractDetails(reqId, to_ib_contract(contract))

    def reqScannerParameters(self) -> None:
        self._client.reqScannerParameters()

    def reqScannerSubscription(
        self, reqId: int, subscription: ScannerSubscription
    ) -> None:
        self._client.reqScannerSubscription(
            reqId, to_ib_scanner_subscription(subscription), [], []
        )

    def cancelScannerSubscription(self, reqId: int) -> None:
        self._client.cancelScannerSubscription(reqId)

    def reqFundamentalData(
        self, reqId: int, contract: Contract, reportType: str
    ) -> None:
        self._client.reqFundamentalData(
            reqId, to_ib_contract(contract), reportType, []
        )

    def cancelFundamentalData(self, reqId: int) -> None:
        self._client.cancelFundamentalData(reqId)

    # -------------- options -----------------
    def exerciseOptions(
        self,
        reqId: int,
        contract: Contract,
        exerciseAction: int,
        exerciseQuantity: int,
        account: str,
        override: int,
    ) -> None:
        self._client.exerciseOptions(
            reqId,
            to_ib_contract(contract),
            exerciseAction,
            exerciseQuantity,
            account,
            override,
        )

    def calculateImpliedVolatility(
        self, reqId: int, contract: Contract, optionPrice: float, underPrice: float
    ) -> None:
        self._client.calculateImpliedVolatility(
            reqId, to_ib_contract(contract), optionPrice, underPrice, []
        )

    def cancelCalculateImpliedVolatility(self, reqId: int) -> None:
        self._client.cancelCalculateImpliedVolatility(reqId)

    def calculateOptionPrice(
        self, reqId: int, contract: Contract, volatility: float, underPrice: float
    ) -> None:
        self._client.calculateOptionPrice(
            reqId, to_ib_contract(contract), volatility, underPrice, []
        )

    def cancelCalculateOptionPrice(self, reqId: int) -> None:
        self._client.cancelCalculateOptionPrice(reqId)

    # -------------- orders -----------------
    def placeOrder(self, orderId: int, contract: Contract, order: Order) -> None:
        self._client.placeOrder(orderId, to_ib_contract(contract), to_ib_order(order))

    def cancelOrder(self, orderId: int) -> None:
        self._client.cancelOrder(orderId)

    def reqOpenOrders(self) -> None:
        self._client.reqOpenOrders()

    def reqAllOpenOrders(self) -> None:
        self._client.reqAllOpenOrders()

    def reqAutoOpenOrders(self, autoBind: bool) -> None:
        self._client.reqAutoOpenOrders(autoBind)

    def reqIds(self, numIds: int) -> None:
        self._client.reqIds(numIds)

    def reqGlobalCancel(self) -> None:
        self._client.reqGlobalCancel()

    # -------------- account -----------------
    def reqAccountUpdates(self, subscribe: bool, acctCode: str) -> None:
        self._client.reqAccountUpdates(subscribe, acctCode)

    def reqExecutions(self, reqId: int, execFilter: ExecutionFilter) -> None:
        self._client.reqExecutions(reqId, to_ib_execution_filter(execFilter))

    def reqManagedAccts(self) -> None:
        self._client.reqManagedAccts()

    def reqAccountSummary(self, reqId: int, groupName: str, tags: str) -> None:
        self._client.reqAccountSummary(reqId, groupName, tags)

    def cancelAccountSummary(self, reqId: int) -> None:
        self._client.cancelAccountSummary(reqId)

    def reqPositions(self) -> None:
        self._client.reqPositions()

    def cancelPositions(self) -> None:
        self._client.cancelPositions()

    # -------------- news, FA, misc -----------------
    def reqNewsBulletins(self, allMsgs: bool) -> None:
        self._client.reqNewsBulletins(allMsgs)

    def cancelNewsBulletins(self) -> None:
        self._client.cancelNewsBulletins()

    def requestFA(self, faData: int) -> None:
        self._client.requestFA(faData)

    def replaceFA(self, faData: int, cxml: str) -> None:
        self._client.replaceFA(faData, cxml)

    def reqCurrentTime(self) -> None:
        self._client.reqCurrentTime()

    def setServerLogLevel(self, logLevel: int) -> None:
        self._client.setServerLogLevel(logLevel)


__all__ = [
    "IbapiTransport",
    "to_ib_contract",
    "from_ib_contract",
    "to_ib_order",
    "from_ib_order",
    "to_ib_execution_filter",
    "to_ib_scanner_subscription",
]
