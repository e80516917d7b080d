import unittest
from decimal import Decimal

from pydantic import ValidationError

from borlette.schemas import (
    BorletteBet,
    LimitRequest,
    Lotto4Bet,
    MarriageBet,
    ResultPublishRequest,
    TicketSubmitRequest,
    parse_bet,
)


class BetSchemaTests(unittest.TestCase):
    def test_borlette_number_is_zero_padded(self) -> None:
        bet = parse_bet({"game": "borlette", "number": "5", "amount": "1", "draw_id": "x"})
        self.assertIsInstance(bet, BorletteBet)
        self.assertEqual(bet.number, "05")

    def test_special_type_is_normalised(self) -> None:
        bet = parse_bet({"game": "borlette", "number": "44", "amount": "1", "draw_id": "x", "special_type": "n4"})
        self.assertEqual(bet.special_type, "N4")
        with self.assertRaises(ValidationError):
            parse_bet({"game": "borlette", "number": "44", "amount": "1", "draw_id": "x", "special_type": "ZZ"})

    def test_marriage_is_canonicalised(self) -> None:
        bet = parse_bet({"game": "marriage", "number": "56x12", "amount": "1", "draw_id": "x"})
        self.assertIsInstance(bet, MarriageBet)
        self.assertEqual(bet.number, "12*56")
        self.assertEqual(bet.sub_numbers(), ("12", "56"))
        with self.assertRaises(ValidationError):
            parse_bet({"game": "marriage", "number": "123", "amount": "1", "draw_id": "x"})

    def test_auto_games_are_flagged(self) -> None:
        bet = parse_bet({"game": "auto_lotto4", "number": "1234", "amount": "1", "draw_id": "x", "option": 3})
        self.assertIsInstance(bet, Lotto4Bet)
        self.assertTrue(bet.auto_generated)
        self.assertTrue(bet.to_record()["is_auto_generated"])

    def test_lotto_shapes(self) -> None:
        with self.assertRaises(ValidationError):
            parse_bet({"game": "lotto4", "number": "123", "amount": "1", "draw_id": "x"})
        with self.assertRaises(ValidationError):
            parse_bet({"game": "lotto5", "number": "12345", "amount": "1", "draw_id": "x", "option": 4})
        with self.assertRaises(ValidationError):
            parse_bet({"game": "lotto3", "number": "12a", "amount": "1", "draw_id": "x"})

    def test_unknown_game_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            parse_bet({"game": "keno", "number": "12", "amount": "1", "draw_id": "x"})

    def test_amount_sign_is_left_to_admission(self) -> None:
        bet = parse_bet({"game": "borlette", "number": "12", "amount": "-1", "draw_id": "x"})
        self.assertEqual(bet.amount, Decimal("-1"))

    def test_cart_needs_bets(self) -> None:
        with self.assertRaises(ValidationError):
            TicketSubmitRequest(agent_id="a", bets=[])

    def test_result_request_validation(self) -> None:
        request = ResultPublishRequest(results=[1, 2, 3, 4, 5], lucky_number=9)
        self.assertEqual(request.results, ["01", "02", "03", "04", "05"])
        with self.assertRaises(ValidationError):
            ResultPublishRequest(results=["01", "02"])

    def test_limit_request_accepts_marriage_numbers(self) -> None:
        request = LimitRequest(number="34*12", limit_amount="50")
        self.assertEqual(request.number, "12*34")
        self.assertIsNone(request.draw_id)
        with self.assertRaises(ValidationError):
            LimitRequest(number="12", limit_amount="-1")


if __name__ == "__main__":
    unittest.main()
