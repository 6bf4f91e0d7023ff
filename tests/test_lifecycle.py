import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from candlestop.data.models import MessageType, OrderMessage, RemoteOrder, RemoteOrderState
from candlestop.errors import InstrumentResolutionError
from candlestop.execution.models import OrderSide, OrderState, RiskSpec, TradeLedger
from candlestop.sizing.position_sizer import PositionSizer
from candlestop.strategy.breakeven import BreakevenTracker
from candlestop.strategy.lifecycle import CloseOrder, ModifyStopLoss, OrderLifecycle, ResizeOrder, SubmitOrder
from tests.fakes import FakeMarket, bar_event

import unittest


class TestOrderLifecycle(unittest.TestCase):
    def setUp(self) -> None:
        self.market = FakeMarket(account_currency="USD")
        self.eurusd = self.market.add("EUR/USD", bid=1.0998, ask=1.1000)
        self.sizer = PositionSizer(self.market, self.market, self.market)
        self.ledger = TradeLedger()
        self.lifecycle = OrderLifecycle(
            self.sizer, BreakevenTracker(), ledger=self.ledger, clock=lambda: 1_700_000_000.0
        )

    def _submit_long(self):
        commands = self.lifecycle.submit(RiskSpec(self.eurusd, 1.1000, 1.0950, 10, OrderSide.LONG))
        submit = commands[0]
        remote = RemoteOrder(submit.label, "EUR/USD", OrderSide.LONG, RemoteOrderState.OPENED,
                             submit.amount, open_price=1.1000)
        return submit, remote

    def test_submit_long(self) -> None:
        commands = self.lifecycle.submit(RiskSpec(self.eurusd, 1.1000, 1.0950, 10, OrderSide.LONG))
        self.assertEqual(len(commands), 1)
        submit = commands[0]
        self.assertIsInstance(submit, SubmitOrder)
        self.assertEqual(submit.label, "BUYSTOP1700000000000")
        self.assertAlmostEqual(submit.take_profit_price, 1.1100)
        self.assertAlmostEqual(submit.amount, 0.02, places=6)
        self.assertEqual(submit.slippage_pips, 5.0)
        order = self.lifecycle.order
        self.assertEqual(order.state, OrderState.PENDING)
        self.assertAlmostEqual(order.breakeven_trigger, 1.1050)
        self.assertFalse(order.breakeven_armed)
        self.assertTrue(self.lifecycle.is_active)

    def test_submit_short_take_profit(self) -> None:
        submit = self.lifecycle.submit(RiskSpec(self.eurusd, 1.1000, 1.1050, 10, OrderSide.SHORT))[0]
        self.assertTrue(submit.label.startswith("SELLSTOP"))
        self.assertAlmostEqual(submit.take_profit_price, 1.0900)
        self.assertAlmostEqual(self.lifecycle.order.breakeven_trigger, 1.0950)

    def test_clamped_size_is_not_submitted(self) -> None:
        with self.assertLogs('candlestop', level='ERROR'):
            commands = self.lifecycle.submit(RiskSpec(self.eurusd, 1.1000, 1.0950, 10_000, OrderSide.LONG))
        self.assertEqual(commands, [])
        self.assertIsNone(self.lifecycle.order)
        self.assertTrue(self.lifecycle.is_finished)

    def test_resolution_failure_on_submit_propagates(self) -> None:
        nzdchf = self.market.add("NZD/CHF", bid=0.5498, ask=0.5500)
        with self.assertRaises(InstrumentResolutionError):
            self.lifecycle.submit(RiskSpec(nzdchf, 0.5500, 0.5450, 10, OrderSide.LONG))
        self.assertIsNone(self.lifecycle.order)

    def test_cannot_submit_twice(self) -> None:
        self._submit_long()
        with self.assertRaises(RuntimeError):
            self._submit_long()

    def test_missing_remote_order_is_skipped(self) -> None:
        self._submit_long()
        with self.assertLogs('candlestop.strategy.lifecycle', level='ERROR') as logs:
            commands = self.lifecycle.on_housekeeping_bar(bar_event(self.eurusd, "M1", 1.1, 1.09), None)
        self.assertEqual(commands, [])
        self.assertIn("not found", logs.output[0])

    def test_resize_follows_market(self) -> None:
        # with a EUR account the EUR/USD pip value moves with the quote
        self.market.account_currency = "EUR"
        _, remote = self._submit_long()
        event = bar_event(self.eurusd, "M1", 1.0990, 1.0980)
        self.assertEqual(self.lifecycle.on_housekeeping_bar(event, remote), [])

        self.market.set_quote("EUR/USD", bid=1.0798, ask=1.0800)
        commands = self.lifecycle.on_housekeeping_bar(event, remote)
        self.assertEqual(len(commands), 1)
        self.assertIsInstance(commands[0], ResizeOrder)
        self.assertNotAlmostEqual(commands[0].amount, remote.amount, places=12)
        # the local amount follows only once the venue accepts it
        self.assertEqual(self.lifecycle.order.amount, remote.amount)
        self.lifecycle.resized(commands[0].amount)
        self.assertEqual(self.lifecycle.order.amount, commands[0].amount)

    def test_resize_skipped_when_conversion_disappears(self) -> None:
        _, remote = self._submit_long()
        del self.market.instruments["EUR/USD"]
        event = bar_event(self.eurusd, "M1", 1.0990, 1.0980)
        with self.assertLogs('candlestop.strategy.lifecycle', level='ERROR'):
            commands = self.lifecycle.on_housekeeping_bar(event, remote)
        self.assertEqual(commands, [])

    def test_resize_skipped_when_clamped(self) -> None:
        _, remote = self._submit_long()
        self.sizer.max_position_size = 0.001
        with self.assertLogs('candlestop.sizing.position_sizer', level='ERROR'):
            commands = self.lifecycle.on_housekeeping_bar(bar_event(self.eurusd, "M1", 1.0990, 1.0980), remote)
        self.assertEqual(commands, [])

    def test_breakeven_moves_stop_once(self) -> None:
        _, remote = self._submit_long()
        remote.state = RemoteOrderState.FILLED
        remote.open_price = 1.1001

        # ask high 1.1049 + 0.0002 spread passes the 1.1050 trigger
        first = self.lifecycle.on_housekeeping_bar(bar_event(self.eurusd, "M1", 1.1049, 1.1010), remote)
        second = self.lifecycle.on_housekeeping_bar(bar_event(self.eurusd, "M1", 1.1080, 1.1060), remote)

        self.assertEqual(first, [ModifyStopLoss(remote.label, 1.1001)])
        self.assertEqual(second, [])
        self.assertEqual(self.lifecycle.order.state, OrderState.FILLED)
        self.assertTrue(self.lifecycle.order.breakeven_armed)

    def test_breakeven_skipped_when_remote_already_closed(self) -> None:
        _, remote = self._submit_long()
        remote.state = RemoteOrderState.FILLED
        remote.open_price = 1.1001
        self.lifecycle.on_message(OrderMessage(MessageType.FILL_OK, remote))
        # take-profit hit before the close message arrives
        remote.state = RemoteOrderState.CLOSED
        commands = self.lifecycle.on_housekeeping_bar(bar_event(self.eurusd, "M1", 1.1105, 1.1060), remote)
        self.assertEqual(commands, [])
        self.assertFalse(self.lifecycle.order.breakeven_armed)

    def test_filled_order_is_not_resized(self) -> None:
        _, remote = self._submit_long()
        remote.state = RemoteOrderState.FILLED
        self.market.set_quote("EUR/USD", bid=1.0798, ask=1.0800)
        commands = self.lifecycle.on_housekeeping_bar(bar_event(self.eurusd, "M1", 1.1010, 1.1000), remote)
        self.assertEqual(commands, [])

    def test_short_breakeven_uses_bid_low(self) -> None:
        submit = self.lifecycle.submit(RiskSpec(self.eurusd, 1.1000, 1.1050, 10, OrderSide.SHORT))[0]
        remote = RemoteOrder(submit.label, "EUR/USD", OrderSide.SHORT, RemoteOrderState.FILLED,
                             submit.amount, open_price=1.0999)
        # ask low would be 1.0951, bid low 1.0949 is past the 1.0950 trigger
        commands = self.lifecycle.on_housekeeping_bar(bar_event(self.eurusd, "M1", 1.0990, 1.0949), remote)
        self.assertEqual(commands, [ModifyStopLoss(submit.label, 1.0999)])

    def test_pending_order_expires_on_period_bar(self) -> None:
        submit, remote = self._submit_long()
        commands = self.lifecycle.on_period_bar(bar_event(self.eurusd, "H1", 1.0990, 1.0950), remote)
        self.assertEqual(commands, [CloseOrder(submit.label)])
        self.assertFalse(self.lifecycle.is_active)
        self.assertFalse(self.lifecycle.is_finished)
        # further bars are ignored
        self.assertEqual(self.lifecycle.on_period_bar(bar_event(self.eurusd, "H1", 1.0990, 1.0950), remote), [])

    def test_failed_cancel_is_retried_on_next_period_bar(self) -> None:
        submit, remote = self._submit_long()
        event = bar_event(self.eurusd, "H1", 1.0990, 1.0950)
        self.assertEqual(self.lifecycle.on_period_bar(event, remote), [CloseOrder(submit.label)])
        self.lifecycle.cancel_failed()
        self.assertTrue(self.lifecycle.is_active)
        self.assertEqual(self.lifecycle.on_period_bar(event, remote), [CloseOrder(submit.label)])

    def test_filled_order_never_expires(self) -> None:
        _, remote = self._submit_long()
        remote.state = RemoteOrderState.FILLED
        self.assertEqual(self.lifecycle.on_period_bar(bar_event(self.eurusd, "H1", 1.1020, 1.1000), remote), [])
        self.assertTrue(self.lifecycle.is_active)

    def test_stale_closed_remote_is_tolerated(self) -> None:
        _, remote = self._submit_long()
        remote.state = RemoteOrderState.CLOSED
        self.assertEqual(self.lifecycle.on_period_bar(bar_event(self.eurusd, "H1", 1.1, 1.09), remote), [])
        self.assertEqual(self.lifecycle.on_housekeeping_bar(bar_event(self.eurusd, "M1", 1.1, 1.09), remote), [])

    def test_close_message_folds_totals_once(self) -> None:
        _, remote = self._submit_long()
        remote.state = RemoteOrderState.CLOSED
        remote.profit_loss = 20.0
        remote.commission = 0.5
        message = OrderMessage(MessageType.CLOSE_OK, remote)
        self.lifecycle.on_message(message)
        self.lifecycle.on_message(message)
        self.assertEqual(self.lifecycle.order.state, OrderState.CLOSED)
        self.assertTrue(self.lifecycle.is_finished)
        self.assertEqual(self.ledger.total_profit, 20.0)
        self.assertEqual(self.ledger.total_commission, 0.5)
        self.assertEqual(self.ledger.net_profit, 19.5)
        self.assertEqual(len(self.ledger.closed_orders), 1)

    def test_close_message_records_venue_amount(self) -> None:
        _, remote = self._submit_long()
        remote.state = RemoteOrderState.CLOSED
        remote.amount = 0.03
        self.lifecycle.on_message(OrderMessage(MessageType.CLOSE_OK, remote))
        self.assertEqual(self.ledger.closed_orders[0].amount, 0.03)

    def test_messages_for_other_labels_are_ignored(self) -> None:
        _, remote = self._submit_long()
        other = RemoteOrder("SELLSTOP1", "EUR/USD", OrderSide.SHORT, RemoteOrderState.CLOSED, 0.01, profit_loss=5.0)
        self.lifecycle.on_message(OrderMessage(MessageType.CLOSE_OK, other))
        self.assertEqual(self.lifecycle.order.state, OrderState.PENDING)
        self.assertEqual(self.ledger.total_profit, 0.0)

    def test_submit_rejected(self) -> None:
        _, remote = self._submit_long()
        with self.assertLogs('candlestop.strategy.lifecycle', level='ERROR'):
            self.lifecycle.on_message(OrderMessage(MessageType.SUBMIT_REJECTED, remote, "no money"))
        self.assertEqual(self.lifecycle.order.state, OrderState.REJECTED)
        self.assertFalse(self.lifecycle.is_active)
        self.assertTrue(self.lifecycle.is_finished)

    def test_change_rejected_only_logs(self) -> None:
        _, remote = self._submit_long()
        with self.assertLogs('candlestop.strategy.lifecycle', level='ERROR') as logs:
            self.lifecycle.on_message(OrderMessage(MessageType.CHANGED_REJECTED, remote))
        self.assertIn("change rejected", logs.output[0])
        self.assertEqual(self.lifecycle.order.state, OrderState.PENDING)

    def test_fill_message_after_cancel_request_reactivates(self) -> None:
        _, remote = self._submit_long()
        self.lifecycle.on_period_bar(bar_event(self.eurusd, "H1", 1.0990, 1.0950), remote)
        remote.state = RemoteOrderState.FILLED
        self.lifecycle.on_message(OrderMessage(MessageType.FILL_OK, remote))
        self.assertEqual(self.lifecycle.order.state, OrderState.FILLED)
        self.assertTrue(self.lifecycle.is_active)


if __name__ == '__main__':
    unittest.main()
