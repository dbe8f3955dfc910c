"""Outgoing side of the wire, as consumed by the facade.

A transport owns the socket framing and handshake. It receives parameters
that are already encoded (duration tokens, end datetime strings, enum wire
values, comma-joined tag lists) and feeds every incoming callback to
``CallbackSink.handle`` on its reader thread, in arrival order. Failures
while converting vendor objects go to ``CallbackSink.report``.

Method names keep the vendor's camelCase.
"""

# ruff: noqa: N802, N803

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from ibbridge.domain.models import (
    Contract,
    ExecutionFilter,
    Order,
    ScannerSubscription,
)


class CallbackSink(Protocol):
    def handle(self, message: str, *args: Any) -> None: ...

    def report(self, error: Exception, message: str) -> None: ...


@runtime_checkable
class Transport(Protocol):
    def bind(self, sink: CallbackSink) -> None:
        """Set the receiver of every incoming callback."""
        ...

    # Connection
    def eConnect(self, host: str, port: int, clientId: int) -> None: ...

    def eDisconnect(self) -> None: ...

    def isConnected(self) -> bool: ...

    # Market data
    def reqMktData(
        self, reqId: int, contract: Contract, genericTickList: str, snapshot: bool
    ) -> None: ...

    def cancelMktData(self, reqId: int) -> None: ...

    def reqMarketDataType(self, marketDataType: int) -> None: ...

    def reqMktDepth(self, reqId: int, contract: Contract, numRows: int) -> None: ...

    def cancelMktDepth(self, reqId: int) -> None: ...

    # Historical and real-time bars
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
    ) -> None: ...

    def cancelHistoricalData(self, reqId: int) -> None: ...

    def reqRealTimeBars(
        self,
        reqId: int,
        contract: Contract,
        barSize: int,
        whatToShow: str,
        useRTH: bool,
    ) -> None: ...

    def cancelRealTimeBars(self, reqId: int) -> None: ...

    # Contracts, scanners, fundamentals
    def reqContractDetails(self, reqId: int, contract: Contract) -> None: ...

    def reqScannerParameters(self) -> None: ...

    def reqScannerSubscription(
        self, reqId: int, subscription: ScannerSubscription
    ) -> None: ...

    def cancelScannerSubscription(self, reqId: int) -> None: ...

    def reqFundamentalData(
        self, reqId: int, contract: Contract, reportType: str
    ) -> None: ...

    def cancelFundamentalData(self, reqId: int) -> None: ...

    # Options
    def exerciseOptions(
        self,
        reqId: int,
        contract: Contract,
        exerciseAction: int,
        exerciseQuantity: int,
        account: str,
        override: int,
    ) -> None: ...

    def calculateImpliedVolatility(
        self, reqId: int, contract: Contract, optionPrice: float, underPrice: float
    ) -> None: ...

    def cancelCalculateImpliedVolatility(self, reqId: int) -> None: ...

    def calculateOptionPrice(
        self, reqId: int, contract: Contract, volatility: float, underPrice: float
    ) -> None: ...

    def cancelCalculateOptionPrice(self, reqId: int) -> None: ...

    # Orders
    def placeOrder(self, orderId: int, contract: Contract, order: Order) -> None: ...

    def cancelOrder(self, orderId: int) -> None: ...

    def reqOpenOrders(self) -> None: ...

    def reqAllOpenOrders(self) -> None: ...

    def reqAutoOpenOrders(self, autoBind: bool) -> None: ...

    def reqIds(self, numIds: int) -> None: ...

    def reqGlobalCancel(self) -> None: ...

    # Account
    def reqAccountUpdates(self, subscribe: bool, acctCode: str) -> None: ...

    def reqExecutions(self, reqId: int, execFilter: ExecutionFilter) -> None: ...

    def reqManagedAccts(self) -> None: ...

    def reqAccountSummary(self, reqId: int, groupName: str, tags: str) -> None: ...

    def cancelAccountSummary(self, reqId: int) -> None: ...

    def reqPositions(self) -> None: ...

    def cancelPositions(self) -> None: ...

    # News, FA, misc
    def reqNewsBulletins(self, allMsgs: bool) -> None: ...

    def cancelNewsBulletins(self) -> None: ...

    def requestFA(self, faData: int) -> None: ...

    def replaceFA(self, faData: int, cxml: str) -> None: ...

    def reqCurrentTime(self) -> None: ...

    def setServerLogLevel(self, logLevel: int) -> None: ...


__all__ = ["CallbackSink", "Transport"]
