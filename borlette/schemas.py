from __future__ import annotations

import datetime as dt
import re
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, parse_obj_as, validator

from .money import quantize, to_cents

SPECIAL_TYPES = frozenset({"BO", "GRAP"} | {f"N{digit}" for digit in range(10)})

_MARRIAGE_SEPARATORS = re.compile(r"[*xX\-/ ]+")
_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _digits(value: Any, length: int, pad: bool = False) -> str:
    text = str(value).strip()
    if not text.isdigit():
        raise ValueError("number must contain digits only")
    if pad and len(text) < length:
        text = text.zfill(length)
    if len(text) != length:
        raise ValueError(f"number must have exactly {length} digits")
    return text


def two_digit(value: Any) -> str:
    return _digits(value, 2, pad=True)


def marriage_number(value: Any) -> str:
    parts = [part for part in _MARRIAGE_SEPARATORS.split(str(value).strip()) if part]
    if len(parts) != 2:
        raise ValueError("marriage needs two numbers, e.g. 12*34")
    first, second = sorted(two_digit(part) for part in parts)
    return f"{first}*{second}"


def lotto_option(value: int) -> int:
    if value not in (1, 2, 3):
        raise ValueError("option must be 1, 2 or 3")
    return value


class BetBase(BaseModel):
    number: str
    amount: Decimal
    draw_id: str
    is_auto_generated: bool = False

    @validator("draw_id")
    def validate_draw_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("draw_id is required")
        return value

    @property
    def auto_generated(self) -> bool:
        return self.is_auto_generated or self.game.startswith("auto_")  # type: ignore[attr-defined]

    def sub_numbers(self) -> Tuple[str, ...]:
        """Numbers checked against the block lists."""
        return (self.number,)

    def exposure_number(self) -> str:
        """Key of the exposure row this bet consumes."""
        return self.number

    def to_record(self) -> Dict[str, Any]:
        record = self.dict()
        record["amount"] = str(quantize(self.amount))
        record["is_auto_generated"] = self.auto_generated
        return record


class BorletteBet(BetBase):
    game: Literal["borlette"]
    special_type: Optional[str] = None

    @validator("number", pre=True)
    def validate_number(cls, value: Any) -> str:
        return two_digit(value)

    @validator("special_type")
    def validate_special_type(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().upper()
        if value not in SPECIAL_TYPES:
            raise ValueError(f"unknown special_type: {value}")
        return value


class Lotto3Bet(BetBase):
    game: Literal["lotto3"]

    @validator("number", pre=True)
    def validate_number(cls, value: Any) -> str:
        return _digits(value, 3)


class Lotto4Bet(BetBase):
    game: Literal["lotto4", "auto_lotto4"]
    option: int = 1

    @validator("number", pre=True)
    def validate_number(cls, value: Any) -> str:
        return _digits(value, 4)

    @validator("option")
    def validate_option(cls, value: int) -> int:
        return lotto_option(value)


class Lotto5Bet(BetBase):
    game: Literal["lotto5", "auto_lotto5"]
    option: int = 1

    @validator("number", pre=True)
    def validate_number(cls, value: Any) -> str:
        return _digits(value, 5)

    @validator("option")
    def validate_option(cls, value: int) -> int:
        return lotto_option(value)


class MarriageBet(BetBase):
    game: Literal["marriage", "auto_marriage"]

    @validator("number", pre=True)
    def validate_number(cls, value: Any) -> str:
        return marriage_number(value)

    def sub_numbers(self) -> Tuple[str, ...]:
        first, second = self.number.split("*")
        return (first, second)


Bet = Annotated[
    Union[BorletteBet, Lotto3Bet, Lotto4Bet, Lotto5Bet, MarriageBet],
    Field(discriminator="game"),
]


def parse_bet(data: Dict[str, Any]) -> BetBase:
    return parse_obj_as(Bet, data)  # type: ignore[arg-type]


class TicketSubmitRequest(BaseModel):
    agent_id: str
    agent_name: Optional[str] = None
    bets: List[Bet] = Field(..., description="Bets of a cart; may span several draws.")
    idempotency_key: Optional[str] = Field(None, description="Client key making resubmission safe.")

    @validator("bets")
    def validate_bets(cls, value: List[BetBase]) -> List[BetBase]:
        if not value:
            raise ValueError("at least one bet is required")
        return value


class DrawFailure(BaseModel):
    draw_id: str
    reason: str
    message: str


class TicketSubmitResponse(BaseModel):
    tickets: List[Dict[str, Any]]
    failures: List[DrawFailure]


class DrawConfigRequest(BaseModel):
    name: str
    time: str = Field(..., description="Scheduled time of day, HH:MM operator local time.")
    frequency: Literal["daily", "weekly", "monthly"] = "daily"
    active: bool = True
    blocked: bool = False
    min_bet: Decimal = Decimal("0")
    max_bet: Decimal = Decimal("0")

    @validator("time")
    def validate_time(cls, value: str) -> str:
        if not _TIME_OF_DAY.match(value.strip()):
            raise ValueError("time must be HH:MM")
        return value.strip()

    @validator("min_bet", "max_bet")
    def validate_bounds(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("bet bounds cannot be negative")
        to_cents(value)
        return value


class DrawBlockRequest(BaseModel):
    blocked: bool


class ResultPublishRequest(BaseModel):
    results: List[str] = Field(..., description="Five two-digit numbers, lot 1 first.")
    lucky_number: Optional[int] = None
    comment: str = ""
    source: Literal["manual", "auto"] = "manual"
    published_at: Optional[dt.datetime] = None
    result_day: Optional[dt.date] = None
    settle: bool = True

    @validator("results", pre=True)
    def validate_results(cls, value: Any) -> List[str]:
        if not isinstance(value, (list, tuple)) or len(value) != 5:
            raise ValueError("results require exactly 5 numbers")
        return [two_digit(item) for item in value]

    @validator("lucky_number")
    def validate_lucky_number(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and not 0 <= value <= 99:
            raise ValueError("lucky_number must be between 0 and 99")
        return value


class NumberRuleRequest(BaseModel):
    number: str
    draw_id: Optional[str] = None

    @validator("number", pre=True)
    def validate_number(cls, value: Any) -> str:
        text = str(value).strip()
        if "*" in text:
            return marriage_number(text)
        if not text.isdigit() or len(text) > 5:
            raise ValueError("number must be 1 to 5 digits")
        return text.zfill(2)


class LimitRequest(NumberRuleRequest):
    limit_amount: Decimal

    @validator("limit_amount")
    def validate_limit(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("limit_amount cannot be negative")
        to_cents(value)
        return value


class SettlementResponse(BaseModel):
    draw_id: str
    result_version: int
    checked: int
    winners: int
    total_won: str
    skipped_paid: int = 0
    failures: List[Dict[str, str]]
