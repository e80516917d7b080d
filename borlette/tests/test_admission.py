import datetime as dt
import threading
import unittest
from decimal import Decimal

from borlette.clock import scheduled_at
from borlette.errors import DrawClosed, DrawNotFound, InvalidAmount, LimitExceeded, NumberBlocked
from borlette.services.admission import partition_by_draw

from .support import DAY, NOW, TIMEZONE, LedgerTestCase, bet


class AdmissionGateTests(LedgerTestCase):
    def test_admits_bundle_as_one_ticket(self) -> None:
        ticket = self.admit(bet("12", "10"), bet("45", "2.50"), agent_name="Agent One")

        self.assertTrue(ticket.id.startswith("agent-1-"))
        self.assertEqual(ticket.draw_id, "draw_x")
        self.assertEqual(ticket.draw_name, "Draw X")
        self.assertEqual(ticket.total, Decimal("12.50"))
        self.assertEqual(ticket.business_day, DAY)
        self.assertEqual(ticket.status, "pending")
        self.assertEqual([item["number"] for item in ticket.get_bets()], ["12", "45"])
        self.assertEqual(self.exposure_of("12"), Decimal("10.00"))
        self.assertEqual(self.exposure_of("45"), Decimal("2.50"))

    def test_bundle_total_has_no_float_drift(self) -> None:
        ticket = self.admit(*[bet(f"{index:02d}", "0.10") for index in range(10)])
        self.assertEqual(ticket.total, Decimal("1.00"))

    def test_rejects_unknown_draw(self) -> None:
        with self.assertRaises(DrawNotFound):
            self.admit(bet("12", draw_id="nope"))

    def test_rejects_bundle_spanning_draws(self) -> None:
        with self.assertRaises(ValueError):
            self.admit(bet("12"), bet("13", draw_id="draw_y"))

    def test_rejects_inside_closing_window(self) -> None:
        closing = scheduled_at(DAY, "20:00", TIMEZONE) - dt.timedelta(minutes=2)
        with self.assertRaises(DrawClosed):
            self.admit(bet("12"), now=closing)
        self.assertEqual(self.exposure_of("12"), Decimal("0.00"))

    def test_rejects_blocked_or_inactive_draw(self) -> None:
        self.draws.set_blocked("draw_x", True)
        with self.assertRaises(DrawClosed):
            self.admit(bet("12"))
        self.draws.set_blocked("draw_x", False)
        self.draws.set_active("draw_x", False)
        with self.assertRaises(DrawClosed):
            self.admit(bet("12"))

    def test_blocked_number_wins_over_limit_and_amount(self) -> None:
        self.exposure.block_number("45")
        self.exposure.set_limit("45", Decimal("1"))
        with self.assertRaises(NumberBlocked):
            self.admit(bet("45", "0"))

    def test_draw_scoped_block_only_applies_to_its_draw(self) -> None:
        self.exposure.block_number("45", draw_id="draw_y")
        self.admit(bet("45"))
        with self.assertRaises(NumberBlocked):
            self.admit(bet("45", draw_id="draw_y"))

    def test_marriage_is_blocked_by_a_sub_number(self) -> None:
        self.exposure.block_number("34")
        with self.assertRaises(NumberBlocked):
            self.admit(bet("34x12", game="marriage"))

    def test_rejected_bundle_leaves_no_exposure(self) -> None:
        self.exposure.block_number("99")
        with self.assertRaises(NumberBlocked):
            self.admit(bet("12", "10"), bet("99", "5"))
        self.assertEqual(self.exposure_of("12"), Decimal("0.00"))
        self.assertEqual(self.tickets.list_by_agent("agent-1"), [])

    def test_limit_exceeded(self) -> None:
        self.exposure.set_limit("45", Decimal("100"))
        self.admit(bet("45", "60"))
        with self.assertRaises(LimitExceeded):
            self.admit(bet("45", "60"))
        self.admit(bet("45", "40"))
        self.assertEqual(self.exposure_of("45"), Decimal("100.00"))

    def test_limit_applies_to_bets_within_one_bundle(self) -> None:
        self.exposure.set_limit("45", Decimal("100"))
        with self.assertRaises(LimitExceeded):
            self.admit(bet("45", "60"), bet("45", "60"))
        self.assertEqual(self.exposure_of("45"), Decimal("0.00"))

    def test_draw_scoped_limit_overrides_global(self) -> None:
        self.exposure.set_limit("45", Decimal("10"))
        self.exposure.set_limit("45", Decimal("0"), draw_id="draw_x")
        self.admit(bet("45", "500"))
        with self.assertRaises(LimitExceeded):
            self.admit(bet("45", "11", draw_id="draw_y"))

    def test_limit_is_per_business_day(self) -> None:
        self.exposure.set_limit("45", Decimal("100"))
        self.admit(bet("45", "100"))
        next_day = NOW + dt.timedelta(days=1)
        ticket = self.admit(bet("45", "100"), now=next_day)
        self.assertEqual(ticket.business_day, DAY + dt.timedelta(days=1))

    def test_invalid_amounts(self) -> None:
        self.draws.upsert_draw("draw_x", "Draw X", "20:00", min_bet=Decimal("1"), max_bet=Decimal("50"))
        for amount in ("0", "-5", "1.234", "0.50", "50.01"):
            with self.subTest(amount=amount):
                with self.assertRaises(InvalidAmount):
                    self.admit(bet("12", amount))
        self.assertEqual(self.exposure_of("12"), Decimal("0.00"))

    def test_out_of_range_amount_is_an_invalid_amount(self) -> None:
        with self.assertRaises(InvalidAmount):
            self.admit(bet("12", "1e30"))
        self.assertEqual(self.exposure_of("12"), Decimal("0.00"))

    def test_limit_is_checked_before_amount_bounds(self) -> None:
        self.draws.upsert_draw("draw_x", "Draw X", "20:00", max_bet=Decimal("50"))
        self.exposure.set_limit("12", Decimal("20"))
        with self.assertRaises(LimitExceeded):
            self.admit(bet("12", "60"))

    def test_resubmission_with_same_key_returns_existing_ticket(self) -> None:
        first = self.admit(bet("12", "10"), idempotency_key="cart-1")
        second = self.admit(bet("12", "10"), idempotency_key="cart-1")
        self.assertEqual(first.id, second.id)
        self.assertEqual(len(self.tickets.list_by_agent("agent-1")), 1)
        self.assertEqual(self.exposure_of("12"), Decimal("10.00"))

    def test_concurrent_bets_never_overshoot_the_limit(self) -> None:
        # Two agents race 60 each against a limit of 100 on the same number.
        self.exposure.set_limit("45", Decimal("100"), draw_id="draw_x")
        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def worker(agent_id: str) -> None:
            barrier.wait()
            try:
                ticket = self.admit(bet("45", "60"), agent_id=agent_id)
                result = ("ok", ticket.id)
            except LimitExceeded as exc:
                result = ("rejected", exc.code)
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker, args=(f"agent-{index}",)) for index in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(kind for kind, _ in outcomes), ["ok", "rejected"])
        self.assertIn(("rejected", "LIMIT_EXCEEDED"), outcomes)
        self.assertEqual(self.exposure_of("45"), Decimal("60.00"))

    def test_many_concurrent_bets_fill_limit_exactly(self) -> None:
        self.exposure.set_limit("07", Decimal("50"))
        barrier = threading.Barrier(8)
        accepted = []
        lock = threading.Lock()

        def worker(index: int) -> None:
            barrier.wait()
            try:
                self.admit(bet("07", "10"), agent_id=f"agent-{index}")
            except LimitExceeded:
                return
            with lock:
                accepted.append(index)

        threads = [threading.Thread(target=worker, args=(index,)) for index in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(accepted), 5)
        self.assertEqual(self.exposure_of("07"), Decimal("50.00"))


class CartSubmissionTests(LedgerTestCase):
    def test_partition_keeps_first_seen_draw_order(self) -> None:
        groups = partition_by_draw([bet("01", draw_id="b"), bet("02", draw_id="a"), bet("03", draw_id="b")])
        self.assertEqual(list(groups), ["b", "a"])
        self.assertEqual([item.number for item in groups["b"]], ["01", "03"])

    def test_cart_partially_succeeds_when_one_draw_is_blocked(self) -> None:
        self.draws.set_blocked("draw_y", True)
        result = self.gate.submit_cart(
            [bet("12", draw_id="draw_x"), bet("34", draw_id="draw_y"), bet("56", draw_id="draw_x")],
            "agent-1",
            now=NOW,
        )

        self.assertEqual(len(result.tickets), 1)
        self.assertEqual(result.tickets[0].draw_id, "draw_x")
        self.assertEqual(len(result.tickets[0].get_bets()), 2)
        self.assertEqual(len(result.failures), 1)
        self.assertEqual(result.failures[0].draw_id, "draw_y")
        self.assertEqual(result.failures[0].reason, "DRAW_CLOSED")

    def test_cart_idempotency_is_per_draw(self) -> None:
        bets = [bet("12", draw_id="draw_x"), bet("34", draw_id="draw_y")]
        first = self.gate.submit_cart(bets, "agent-1", idempotency_key="k1", now=NOW)
        second = self.gate.submit_cart(bets, "agent-1", idempotency_key="k1", now=NOW)

        self.assertEqual([t.id for t in first.tickets], [t.id for t in second.tickets])
        self.assertEqual(first.tickets[0].idempotency_key, "k1:draw_x")
        self.assertEqual(len(self.tickets.list_by_agent("agent-1")), 2)

    def test_cart_keeps_going_after_an_out_of_range_amount(self) -> None:
        result = self.gate.submit_cart(
            [bet("12", "1e30", draw_id="draw_x"), bet("13", "5", draw_id="draw_y")],
            "agent-1",
            now=NOW,
        )

        self.assertEqual([ticket.draw_id for ticket in result.tickets], ["draw_y"])
        self.assertEqual([(f.draw_id, f.reason) for f in result.failures], [("draw_x", "INVALID_AMOUNT")])

    def test_cart_reports_unknown_draw(self) -> None:
        result = self.gate.submit_cart([bet("12", draw_id="ghost")], "agent-1", now=NOW)
        self.assertFalse(result.accepted)
        self.assertEqual(result.failures[0].reason, "NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
