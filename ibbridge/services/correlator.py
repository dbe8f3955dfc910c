"""
Event Correlator

Single entry point for raw callbacks coming off the transport's receive
thread. Each wire message name maps to one producer that decodes the
arguments, builds one domain event and routes it:

- connection-scoped events are published as they are,
- request-scoped events are checked against the registry and the reply
  profile of the request kind, then published; terminal replies retire
  the id,
- anything that cannot be decoded or breaks the reply sequence is reported
  through the ErrorHandler and published as a client-side
  ConnectionErrorEvent. No exception leaves ``handle``.
"""

# ruff: noqa: N803  # producer arguments keep the wire field names

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from ibbridge.core.error_handler import (
    AdapterError,
    ErrorHandler,
    MalformedData,
    ProtocolError,
    ProtocolViolation,
    UnknownEnumValue,
    UnknownRequestId,
    get_error_handler,
)
from ibbridge.domain import events as ev
from ibbridge.domain.request_kinds import ReplyShape, profile_for
from ibbridge.domain.wire_codes import (
    FADataType,
    MarketDataType,
    MarketDepthOperation,
    MarketDepthSide,
    NewsType,
    OrderStatus,
    TickType,
    decode,
    is_warning_code,
)
from ibbridge.observability import metrics
from ibbridge.services.event_dispatcher import EventDispatcher
from ibbridge.services.request_registry import RequestRegistry, RetireReason
from ibbridge.utils.time_utils import decode_bar_timestamp, epoch_to_utc

logger = logging.getLogger(__name__)

# Reasons after which late callbacks are expected and dropped quietly
_QUIET_REASONS = (
    RetireReason.CANCELLED,
    RetireReason.DISCONNECTED,
    RetireReason.FAILED,
)


# ---------------------------------------------------------------------------
# Field decoding
# ---------------------------------------------------------------------------


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise MalformedData(f"{name} is not an integer: {value!r}", raw=value) from e


def _as_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise MalformedData(f"{name} is not a number: {value!r}", raw=value) from e


def _as_optional_float(value: Any, name: str) -> float | None:
    return None if value is None else _as_float(value, name)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true")
    return bool(value)


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


def _bar_date_text(value: Any) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if not isinstance(value, str):
        raise MalformedData(f"Bar date is not text: {value!r}", raw=value)
    return value


class EventCorrelator:
    def __init__(
        self,
        registry: RequestRegistry,
        dispatcher: EventDispatcher,
        error_handler: ErrorHandler | None = None,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.error_handler = error_handler or get_error_handler()
        self._producers: dict[str, Callable[..., None]] = {
            # connection scope
            "connectionClosed": self._connection_closed,
            "error": self._error,
            "currentTime": self._current_time,
            "nextValidId": self._next_valid_id,
            "managedAccounts": self._managed_accounts,
            "scannerParameters": self._scanner_parameters,
            "updateNewsBulletin": self._news_bulletin,
            "receiveFA": self._receive_fa,
            "updateAccountValue": self._account_value,
            "updatePortfolio": self._portfolio,
            "updateAccountTime": self._account_time,
            "accountDownloadEnd": self._account_download_end,
            "orderStatus": self._order_status,
            "openOrder": self._open_order,
            "openOrderEnd": self._open_order_end,
            "commissionReport": self._commission_report,
            "position": self._position,
            "positionEnd": self._position_end,
            # request scope
            "tickPrice": self._tick_price,
            "tickSize": self._tick_size,
            "tickString": self._tick_string,
            "tickGeneric": self._tick_generic,
            "tickEFP": self._tick_efp,
            "tickOptionComputation": self._tick_option_computation,
            "tickSnapshotEnd": self._tick_snapshot_end,
            "marketDataType": self._market_data_type,
            "deltaNeutralValidation": self._delta_neutral_validation,
            "contractDetails": self._contract_details,
            "contractDetailsEnd": self._contract_details_end,
            "execDetails": self._exec_details,
            "execDetailsEnd": self._exec_details_end,
            "fundamentalData": self._fundamental_data,
            "historicalData": self._historical_data,
            "historicalDataEnd": self._historical_data_end,
            "updateMktDepth": self._market_depth,
            "updateMktDepthL2": self._market_depth_l2,
            "realtimeBar": self._realtime_bar,
            "scannerData": self._scanner_data,
            "scannerDataEnd": self._scanner_data_end,
            "accountSummary": self._account_summary,
            "accountSummaryEnd": self._account_summary_end,
        }

    @property
    def messages(self) -> frozenset[str]:
        return frozenset(self._producers)

    # -------------- entry point -----------------
    def handle(self, message: str, *args: Any) -> None:
        """Decode and route one raw callback; never raises."""
        metrics.inc(metrics.CALLBACKS_RECEIVED)
        producer = self._producers.get(message)
        try:
            if producer is None:
                raise ProtocolViolation(f"Unhandled callback {message!r}")
            producer(*args)
        except Exception as e:
            self.report(e, message)

    def report(self, error: Exception, message: str) -> None:
        """Record a failure for one callback and publish it as a client error."""
        if isinstance(error, MalformedData | UnknownEnumValue):
            metrics.inc(metrics.DECODE_FAILURES)
        elif isinstance(error, ProtocolViolation):
            metrics.inc(metrics.PROTOCOL_VIOLATIONS)
        elif isinstance(error, UnknownRequestId):
            metrics.inc(metrics.UNKNOWN_REQUEST_IDS)

        try:
            self.error_handler.handle_error(
                error,
                context={"callback": message},
                module=__name__,
                function="handle",
            )
        except Exception:
            logger.exception("Error handler failed while reporting %s", message)

        text = error.message if isinstance(error, AdapterError) else str(error)
        self.dispatcher.publish(
            ev.ConnectionErrorEvent(
                message=f"{message}: {text}",
                code=None,
                error_type=type(error).__name__,
                source="client",
                request_id=getattr(error, "request_id", None),
            )
        )

    # -------------- routing -----------------
    def _publish_request_event(self, event: Any) -> None:
        request_id = event.request_id
        pending = self.registry.get(request_id)
        if pending is None:
            self._unresolved(request_id, event)
            return

        profile = profile_for(pending.kind)
        category = event.category
        if not profile.accepts(category):
            raise ProtocolViolation(
                f"{type(event).__name__} is not a valid reply for "
                f"{pending.kind.value} request {request_id}",
                request_id=request_id,
            )
        if isinstance(event, ev.HistoricalBar) and not self.registry.record_progress(
            request_id, event.record_index, event.record_total
        ):
            raise ProtocolViolation(
                f"Record {event.record_index}/{event.record_total} out of sequence "
                f"for request {request_id}",
                request_id=request_id,
            )

        self.dispatcher.publish(event)

        if category == profile.end and profile.terminal_end:
            self.registry.retire(request_id, RetireReason.ENDED)
        elif profile.shape is ReplyShape.SINGLE_SHOT:
            self.registry.retire(request_id, RetireReason.ENDED)

    def _unresolved(self, request_id: int, event: Any) -> None:
        reason = self.registry.retired_reason(request_id)
        if reason in _QUIET_REASONS:
            metrics.inc(metrics.LATE_CALLBACKS_DISCARDED)
            logger.debug(
                "Discarding late %s for request %s (%s)",
                type(event).__name__,
                request_id,
                reason.value,
            )
            return
        if reason is RetireReason.ENDED:
            raise ProtocolViolation(
                f"{type(event).__name__} for request {request_id} after it ended",
                request_id=request_id,
            )
        raise UnknownRequestId(request_id)

    # -------------- connection-scoped producers -----------------
    def _connection_closed(self) -> None:
        logger.info("Connection closed by peer")
        self.dispatcher.publish(ev.ConnectionClosed())

    def _error(self, reqId: Any, errorCode: Any, errorString: Any, *_: Any) -> None:
        request_id = _as_int(reqId, "reqId")
        code = _as_int(errorCode, "errorCode")
        message = _as_str(errorString)

        if is_warning_code(code):
            logger.info("Server notice %s (id=%s): %s", code, request_id, message)
        else:
            self.error_handler.handle_error(
                ProtocolError(request_id, code, message),
                module=__name__,
                function="error",
            )

        if request_id < 0:
            self.dispatcher.publish(
                ev.ConnectionErrorEvent(
                    message=message,
                    code=code,
                    error_type=ProtocolError.__name__,
                    source="server",
                )
            )
            return

        pending = self.registry.get(request_id)
        kind = pending.kind if pending is not None else None
        self.dispatcher.publish(ev.RequestErrorEvent(request_id, code, message, kind))

        # A failed batch or single-shot request will not send its End
        if kind is not None and not is_warning_code(code):
            if profile_for(kind).shape is not ReplyShape.STREAMING:
                self.registry.retire(request_id, RetireReason.FAILED)

    def _current_time(self, time: Any) -> None:
        self.dispatcher.publish(ev.CurrentTime(epoch_to_utc(_as_int(time, "time"))))

    def _next_valid_id(self, orderId: Any) -> None:
        self.dispatcher.publish(ev.NextValidId(_as_int(orderId, "orderId")))

    def _managed_accounts(self, accountsList: Any) -> None:
        names = _as_str(accountsList).split(",")
        accounts = tuple(a.strip() for a in names if a.strip())
        self.dispatcher.publish(ev.ManagedAccounts(accounts))

    def _scanner_parameters(self, xml: Any) -> None:
        self.dispatcher.publish(ev.ScannerParameters(_as_str(xml)))

    def _news_bulletin(
        self, msgId: Any, msgType: Any, message: Any, origExchange: Any
    ) -> None:
        self.dispatcher.publish(
            ev.NewsBulletin(
                message_id=_as_int(msgId, "msgId"),
                news_type=decode(NewsType, _as_int(msgType, "msgType")),
                message=_as_str(message),
                origin_exchange=_as_str(origExchange),
            )
        )

    def _receive_fa(self, faDataType: Any, xml: Any) -> None:
        data_type = decode(FADataType, _as_int(faDataType, "faDataType"))
        self.dispatcher.publish(ev.ReceiveFA(data_type, _as_str(xml)))

    def _account_value(
        self, key: Any, val: Any, currency: Any, accountName: Any
    ) -> None:
        self.dispatcher.publish(
            ev.AccountValue(
                _as_str(key), _as_str(val), _as_str(currency), _as_str(accountName)
            )
        )

    def _portfolio(
        self,
        contract: Any,
        position: Any,
        marketPrice: Any,
        marketValue: Any,
        averageCost: Any,
        unrealizedPNL: Any,
        realizedPNL: Any,
        accountName: Any,
    ) -> None:
        self.dispatcher.publish(
            ev.PortfolioUpdate(
                contract=contract,
                position=_as_float(position, "position"),
                market_price=_as_float(marketPrice, "marketPrice"),
                market_value=_as_float(marketValue, "marketValue"),
                average_cost=_as_float(averageCost, "averageCost"),
                unrealized_pnl=_as_float(unrealizedPNL, "unrealizedPNL"),
                realized_pnl=_as_float(realizedPNL, "realizedPNL"),
                account=_as_str(accountName),
            )
        )

    def _account_time(self, timeStamp: Any) -> None:
        self.dispatcher.publish(ev.AccountTime(_as_str(timeStamp)))

    def _account_download_end(self, accountName: Any) -> None:
        self.dispatcher.publish(ev.AccountDownloadEnd(_as_str(accountName)))

    def _order_status(
        self,
        orderId: Any,
        status: Any,
        filled: Any,
        remaining: Any,
        avgFillPrice: Any,
        permId: Any,
        parentId: Any,
        lastFillPrice: Any,
        clientId: Any,
        whyHeld: Any,
        *_: Any,
    ) -> None:
        self.dispatcher.publish(
            ev.OrderStatusEvent(
                order_id=_as_int(orderId, "orderId"),
                status=decode(OrderStatus, status),
                filled=_as_float(filled, "filled"),
                remaining=_as_float(remaining, "remaining"),
                avg_fill_price=_as_float(avgFillPrice, "avgFillPrice"),
                perm_id=_as_int(permId, "permId"),
                parent_id=_as_int(parentId, "parentId"),
                last_fill_price=_as_float(lastFillPrice, "lastFillPrice"),
                client_id=_as_int(clientId, "clientId"),
                why_held=_as_str(whyHeld),
            )
        )

    def _open_order(
        self, orderId: Any, contract: Any, order: Any, orderState: Any
    ) -> None:
        self.dispatcher.publish(
            ev.OpenOrder(_as_int(orderId, "orderId"), contract, order, orderState)
        )

    def _open_order_end(self) -> None:
        self.dispatcher.publish(ev.OpenOrderEnd())

    def _commission_report(self, commissionReport: Any) -> None:
        self.dispatcher.publish(ev.CommissionReportEvent(commissionReport))

    def _position(
        self, account: Any, contract: Any, position: Any, avgCost: Any
    ) -> None:
        self.dispatcher.publish(
            ev.Position(
                account=_as_str(account),
                contract=contract,
                position=_as_float(position, "position"),
                average_cost=_as_float(avgCost, "avgCost"),
            )
        )

    def _position_end(self) -> None:
        self.dispatcher.publish(ev.PositionEnd())

    # -------------- request-scoped producers -----------------
    def _tick_price(
        self, reqId: Any, tickType: Any, price: Any, canAutoExecute: Any = False
    ) -> None:
        self._publish_request_event(
            ev.TickPrice(
                request_id=_as_int(reqId, "reqId"),
                tick_type=decode(TickType, _as_int(tickType, "tickType")),
                price=_as_float(price, "price"),
                can_auto_execute=_as_bool(canAutoExecute),
            )
        )

    def _tick_size(self, reqId: Any, tickType: Any, size: Any) -> None:
        self._publish_request_event(
            ev.TickSize(
                request_id=_as_int(reqId, "reqId"),
                tick_type=decode(TickType, _as_int(tickType, "tickType")),
                size=_as_int(size, "size"),
            )
        )

    def _tick_string(self, reqId: Any, tickType: Any, value: Any) -> None:
        self._publish_request_event(
            ev.TickString(
                request_id=_as_int(reqId, "reqId"),
                tick_type=decode(TickType, _as_int(tickType, "tickType")),
                value=_as_str(value),
            )
        )

    def _tick_generic(self, reqId: Any, tickType: Any, value: Any) -> None:
        self._publish_request_event(
            ev.TickGeneric(
                request_id=_as_int(reqId, "reqId"),
                tick_type=decode(TickType, _as_int(tickType, "tickType")),
                value=_as_float(value, "value"),
            )
        )

    def _tick_efp(
        self,
        reqId: Any,
        tickType: Any,
        basisPoints: Any,
        formattedBasisPoints: Any,
        impliedFuture: Any,
        holdDays: Any,
        futureLastTradeDate: Any,
        dividendImpact: Any,
        dividendsToLastTradeDate: Any,
    ) -> None:
        self._publish_request_event(
            ev.TickEfp(
                request_id=_as_int(reqId, "reqId"),
                tick_type=decode(TickType, _as_int(tickType, "tickType")),
                basis_points=_as_float(basisPoints, "basisPoints"),
                formatted_basis_points=_as_str(formattedBasisPoints),
                implied_future=_as_float(impliedFuture, "impliedFuture"),
                hold_days=_as_int(holdDays, "holdDays"),
                future_last_trade_date=_as_str(futureLastTradeDate),
                dividend_impact=_as_float(dividendImpact, "dividendImpact"),
                dividends_to_last_trade_date=_as_float(
                    dividendsToLastTradeDate, "dividendsToLastTradeDate"
                ),
            )
        )

    def _tick_option_computation(
        self,
        reqId: Any,
        tickType: Any,
        impliedVol: Any,
        delta: Any,
        optPrice: Any,
        pvDividend: Any,
        gamma: Any,
        vega: Any,
        theta: Any,
        undPrice: Any,
    ) -> None:
        self._publish_request_event(
            ev.TickOptionComputation(
                request_id=_as_int(reqId, "reqId"),
                tick_type=decode(TickType, _as_int(tickType, "tickType")),
                implied_volatility=_as_optional_float(impliedVol, "impliedVol"),
                delta=_as_optional_float(delta, "delta"),
                option_price=_as_optional_float(optPrice, "optPrice"),
                pv_dividend=_as_optional_float(pvDividend, "pvDividend"),
                gamma=_as_optional_float(gamma, "gamma"),
                vega=_as_optional_float(vega, "vega"),
                theta=_as_optional_float(theta, "theta"),
                underlying_price=_as_optional_float(undPrice, "undPrice"),
            )
        )

    def _tick_snapshot_end(self, reqId: Any) -> None:
        self._publish_request_event(ev.TickSnapshotEnd(_as_int(reqId, "reqId")))

    def _market_data_type(self, reqId: Any, marketDataType: Any) -> None:
        self._publish_request_event(
            ev.MarketDataTypeEvent(
                _as_int(reqId, "reqId"),
                decode(MarketDataType, _as_int(marketDataType, "marketDataType")),
            )
        )

    def _delta_neutral_validation(
        self, reqId: Any, deltaNeutralContract: Any
    ) -> None:
        self._publish_request_event(
            ev.DeltaNeutralValidation(_as_int(reqId, "reqId"), deltaNeutralContract)
        )

    def _contract_details(self, reqId: Any, contractDetails: Any) -> None:
        self._publish_request_event(
            ev.ContractDetailsData(_as_int(reqId, "reqId"), contractDetails)
        )

    def _contract_details_end(self, reqId: Any) -> None:
        self._publish_request_event(ev.ContractDetailsEnd(_as_int(reqId, "reqId")))

    def _exec_details(self, reqId: Any, contract: Any, execution: Any) -> None:
        self._publish_request_event(
            ev.ExecutionDetails(_as_int(reqId, "reqId"), contract, execution)
        )

    def _exec_details_end(self, reqId: Any) -> None:
        self._publish_request_event(ev.ExecutionDetailsEnd(_as_int(reqId, "reqId")))

    def _fundamental_data(self, reqId: Any, data: Any) -> None:
        self._publish_request_event(
            ev.FundamentalData(_as_int(reqId, "reqId"), _as_str(data))
        )

    def _historical_data(
        self,
        reqId: Any,
        date: Any,
        open: Any,
        high: Any,
        low: Any,
        close: Any,
        volume: Any,
        count: Any,
        WAP: Any,
        hasGaps: Any,
        recordIndex: Any,
        recordTotal: Any,
    ) -> None:
        self._publish_request_event(
            ev.HistoricalBar(
                request_id=_as_int(reqId, "reqId"),
                timestamp=decode_bar_timestamp(_bar_date_text(date)),
                open=_as_float(open, "open"),
                high=_as_float(high, "high"),
                low=_as_float(low, "low"),
                close=_as_float(close, "close"),
                volume=_as_int(volume, "volume"),
                trade_count=_as_int(count, "count"),
                wap=_as_float(WAP, "WAP"),
                has_gaps=_as_bool(hasGaps),
                record_index=_as_int(recordIndex, "recordIndex"),
                record_total=_as_int(recordTotal, "recordTotal"),
            )
        )

    def _historical_data_end(self, reqId: Any, start: Any, end: Any) -> None:
        self._publish_request_event(
            ev.HistoricalDataEnd(
                _as_int(reqId, "reqId"), _as_str(start), _as_str(end)
            )
        )

    def _market_depth(
        self,
        reqId: Any,
        position: Any,
        operation: Any,
        side: Any,
        price: Any,
        size: Any,
    ) -> None:
        self._market_depth_l2(reqId, position, "", operation, side, price, size)

    def _market_depth_l2(
        self,
        reqId: Any,
        position: Any,
        marketMaker: Any,
        operation: Any,
        side: Any,
        price: Any,
        size: Any,
        *_: Any,
    ) -> None:
        self._publish_request_event(
            ev.MarketDepthUpdate(
                request_id=_as_int(reqId, "reqId"),
                position=_as_int(position, "position"),
                operation=decode(MarketDepthOperation, _as_int(operation, "operation")),
                side=decode(MarketDepthSide, _as_int(side, "side")),
                price=_as_float(price, "price"),
                size=_as_int(size, "size"),
                market_maker=_as_str(marketMaker),
            )
        )

    def _realtime_bar(
        self,
        reqId: Any,
        time: Any,
        open: Any,
        high: Any,
        low: Any,
        close: Any,
        volume: Any,
        wap: Any,
        count: Any,
    ) -> None:
        self._publish_request_event(
            ev.RealTimeBar(
                request_id=_as_int(reqId, "reqId"),
                timestamp=epoch_to_utc(_as_int(time, "time")),
                open=_as_float(open, "open"),
                high=_as_float(high, "high"),
                low=_as_float(low, "low"),
                close=_as_float(close, "close"),
                volume=_as_int(volume, "volume"),
                wap=_as_float(wap, "wap"),
                count=_as_int(count, "count"),
            )
        )

    def _scanner_data(
        self,
        reqId: Any,
        rank: Any,
        contractDetails: Any,
        distance: Any = "",
        benchmark: Any = "",
        projection: Any = "",
        legsStr: Any = "",
    ) -> None:
        self._publish_request_event(
            ev.ScannerData(
                request_id=_as_int(reqId, "reqId"),
                rank=_as_int(rank, "rank"),
                details=contractDetails,
                distance=_as_str(distance),
                benchmark=_as_str(benchmark),
                projection=_as_str(projection),
                legs=_as_str(legsStr),
            )
        )

    def _scanner_data_end(self, reqId: Any) -> None:
        self._publish_request_event(ev.ScannerDataEnd(_as_int(reqId, "reqId")))

    def _account_summary(
        self, reqId: Any, account: Any, tag: Any, value: Any, currency: Any
    ) -> None:
        self._publish_request_event(
            ev.AccountSummary(
                request_id=_as_int(reqId, "reqId"),
                account=_as_str(account),
                tag=_as_str(tag),
                value=_as_str(value),
                currency=_as_str(currency),
            )
        )

    def _account_summary_end(self, reqId: Any) -> None:
        self._publish_request_event(ev.AccountSummaryEnd(_as_int(reqId, "reqId")))
