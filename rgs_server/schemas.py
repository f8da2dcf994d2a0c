from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .config import BOOK_AMOUNT_MULTIPLIER


WIN_SUM_TOLERANCE = 1e-6


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BookModel(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# Outcome book events


class Position(BookModel):
    reel: int
    row: int


class Symbol(BookModel):
    name: str
    wild: Optional[bool] = None
    scatter: Optional[bool] = None
    multiplier: Optional[int] = None


class RevealEvent(BookModel):
    index: int
    type: Literal["reveal"]
    board: List[List[Symbol]]
    padding_positions: List[int]
    game_type: Literal["basegame", "freegame"]
    anticipation: List[int]

    @model_validator(mode="after")
    def check_board(self):
        if not self.board or not self.board[0]:
            raise ValueError(f"reveal {self.index}: empty board")
        rows = len(self.board[0])
        if any(len(reel) != rows for reel in self.board):
            raise ValueError(f"reveal {self.index}: board is not rectangular")
        return self


class WinLine(BookModel):
    symbol: str
    kind: int
    win: int
    positions: List[Position]
    # line-pays and ways-pays books carry different scoring metadata
    meta: Dict[str, Any] = Field(default_factory=dict)


class WinInfoEvent(BookModel):
    index: int
    type: Literal["winInfo"]
    total_win: int
    wins: List[WinLine]


class SetWinEvent(BookModel):
    index: int
    type: Literal["setWin"]
    amount: int
    win_level: Optional[int] = None


class SetTotalWinEvent(BookModel):
    index: int
    type: Literal["setTotalWin"]
    amount: int
    win_level: Optional[int] = None


class FinalWinEvent(BookModel):
    index: int
    type: Literal["finalWin"]
    amount: int
    win_level: Optional[int] = None


class FreeSpinTriggerEvent(BookModel):
    index: int
    type: Literal["freeSpinTrigger"]
    total_fs: int
    positions: List[Position]


class UpdateFreeSpinEvent(BookModel):
    index: int
    type: Literal["updateFreeSpin"]
    amount: int
    total: int


class FreeSpinEndEvent(BookModel):
    index: int
    type: Literal["freeSpinEnd"]
    amount: int
    win_level: Optional[int] = None


BookEvent = Annotated[
    Union[
        RevealEvent,
        WinInfoEvent,
        SetWinEvent,
        SetTotalWinEvent,
        FinalWinEvent,
        FreeSpinTriggerEvent,
        UpdateFreeSpinEvent,
        FreeSpinEndEvent,
    ],
    Field(discriminator="type"),
]


class Book(BookModel):
    id: int
    payout_multiplier: float = Field(ge=0)
    events: List[BookEvent]
    criteria: str
    base_game_wins: float = 0.0
    free_game_wins: float = 0.0

    @model_validator(mode="after")
    def check_book(self):
        if not self.events:
            raise ValueError(f"book {self.id}: no events")
        indexes = [event.index for event in self.events]
        if indexes != list(range(len(self.events))):
            raise ValueError(f"book {self.id}: event indexes must run 0..{len(self.events) - 1} in order")
        if abs(self.base_game_wins + self.free_game_wins - self.payout_multiplier) > WIN_SUM_TOLERANCE:
            raise ValueError(
                f"book {self.id}: baseGameWins + freeGameWins != payoutMultiplier "
                f"({self.base_game_wins} + {self.free_game_wins} != {self.payout_multiplier})"
            )
        triggers = sum(1 for event in self.events if event.type == "freeSpinTrigger")
        if triggers > 1:
            raise ValueError(f"book {self.id}: more than one freeSpinTrigger")
        final_wins = [event for event in self.events if event.type == "finalWin"]
        if final_wins:
            expected = round(self.payout_multiplier * BOOK_AMOUNT_MULTIPLIER)
            if final_wins[-1].amount != expected:
                raise ValueError(
                    f"book {self.id}: finalWin {final_wins[-1].amount} does not match "
                    f"payoutMultiplier {self.payout_multiplier}"
                )
        return self

    @property
    def is_bonus(self) -> bool:
        return any(event.type == "freeSpinTrigger" for event in self.events)

    def dump_events(self) -> List[dict]:
        """Event script in wire form; a fresh copy on every call."""
        return [event.model_dump(by_alias=True, exclude_none=True) for event in self.events]


# Wallet requests. Every field is optional; bad fields are dropped by the transport.


class AuthenticateRequest(WireModel):
    session_id: Optional[str] = Field(default=None, alias="sessionID")
    language: Optional[str] = None


class PlayRequest(WireModel):
    session_id: Optional[str] = Field(default=None, alias="sessionID")
    amount: Optional[int] = Field(default=None, gt=0)
    mode: Optional[str] = None
    currency: Optional[str] = None


class EndRoundRequest(WireModel):
    session_id: Optional[str] = Field(default=None, alias="sessionID")


class BalanceRequest(WireModel):
    session_id: Optional[str] = Field(default=None, alias="sessionID")


class EventRequest(WireModel):
    session_id: Optional[str] = Field(default=None, alias="sessionID")
    event: Optional[str] = None


# Wallet responses


class StatusItem(WireModel):
    status_code: str = "SUCCESS"


class BalanceItem(WireModel):
    amount: int
    currency: str


class RoundItem(WireModel):
    round_id: int = Field(alias="roundID")
    amount: int
    payout: int
    payout_multiplier: float
    active: bool
    state: List[dict]
    mode: str
    event: Optional[str] = None


class BetModeItem(WireModel):
    cost: int


class GameConfigItem(WireModel):
    game_id: str = Field(alias="gameID")
    min_bet: int
    max_bet: int
    step_bet: int
    default_bet_level: int
    bet_levels: List[int]
    bet_modes: Dict[str, BetModeItem]
    jurisdiction: Dict[str, Any]


class AuthenticateResponse(WireModel):
    status: StatusItem = Field(default_factory=StatusItem)
    balance: BalanceItem
    config: GameConfigItem
    round: Optional[RoundItem] = None


class PlayResponse(WireModel):
    status: StatusItem = Field(default_factory=StatusItem)
    balance: BalanceItem
    round: RoundItem


class BalanceResponse(WireModel):
    status: StatusItem = Field(default_factory=StatusItem)
    balance: BalanceItem


class EventResponse(WireModel):
    status: StatusItem = Field(default_factory=StatusItem)
    event: str


class ActionResponse(WireModel):
    status: StatusItem = Field(default_factory=StatusItem)
    balance: BalanceItem
    action: Optional[RoundItem] = None


class AckResponse(WireModel):
    status: StatusItem = Field(default_factory=StatusItem)


class GameSearchResponse(WireModel):
    balance: BalanceItem


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    message: str
    balance: float


# Admin audit views


class TransactionItem(BaseModel):
    id: int
    type: str
    round_id: Optional[int] = None
    amount: int
    before_balance: int
    after_balance: int
    currency: str
    description: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GameLogItem(BaseModel):
    id: int
    game_id: Optional[str] = None
    round_id: Optional[int] = None
    action: str
    detail: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
