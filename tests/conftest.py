import pytest
from fastapi.testclient import TestClient

from rgs_server.catalogue import OutcomeCatalogue
from rgs_server.config import Settings
from rgs_server.database import init_db, make_engine, make_session_factory
from rgs_server.ledger import BalanceLedger
from rgs_server.main import create_app
from rgs_server.rounds import RoundController


STARTING_BALANCE = 10_000_000_000
BET = 1_000_000

ZERO_BOOK = 1
SMALL_WIN_BOOK = 2
BONUS_BOOK = 6


def reveal(index, game_type="basegame", scatter_reels=()):
    board = []
    for reel in range(5):
        cells = [{"name": "L1"} for _ in range(5)]
        if reel in scatter_reels:
            cells[1] = {"name": "S", "scatter": True}
        board.append(cells)
    return {
        "index": index,
        "type": "reveal",
        "board": board,
        "paddingPositions": [1, 2, 3, 4, 5],
        "gameType": game_type,
        "anticipation": [0, 0, 0, 0, 0],
    }


def book_record(book_id, multiplier, bonus=False):
    win = round(multiplier * 100)
    if bonus:
        events = [
            reveal(0, scatter_reels=(0, 1, 2)),
            {"index": 1, "type": "setTotalWin", "amount": 0},
            {
                "index": 2,
                "type": "freeSpinTrigger",
                "totalFs": 10,
                "positions": [{"reel": 0, "row": 1}, {"reel": 1, "row": 1}, {"reel": 2, "row": 1}],
            },
            {"index": 3, "type": "updateFreeSpin", "amount": 0, "total": 10},
            reveal(4, game_type="freegame"),
            {"index": 5, "type": "updateFreeSpin", "amount": 10, "total": 10},
            {"index": 6, "type": "freeSpinEnd", "amount": win, "winLevel": 5},
            {"index": 7, "type": "setTotalWin", "amount": win},
            {"index": 8, "type": "finalWin", "amount": win},
        ]
        return {
            "id": book_id,
            "payoutMultiplier": multiplier,
            "events": events,
            "criteria": "freegame",
            "baseGameWins": 0.0,
            "freeGameWins": multiplier,
        }
    events = [reveal(0)]
    if win:
        events.append(
            {
                "index": 1,
                "type": "winInfo",
                "totalWin": win,
                "wins": [
                    {
                        "symbol": "L1",
                        "kind": 5,
                        "win": win,
                        "positions": [{"reel": r, "row": 0} for r in range(5)],
                        "meta": {"ways": 1, "globalMult": 1, "winWithoutMult": win, "symbolMult": 0},
                    }
                ],
            }
        )
        events.append({"index": 2, "type": "setWin", "amount": win, "winLevel": 2})
    events.append({"index": len(events), "type": "setTotalWin", "amount": win})
    events.append({"index": len(events), "type": "finalWin", "amount": win})
    return {
        "id": book_id,
        "payoutMultiplier": multiplier,
        "events": events,
        "criteria": "basegame" if win else "0",
        "baseGameWins": multiplier,
        "freeGameWins": 0.0,
    }


class ScriptedRng:
    """Stands in for random.Random: hands out books by id in order, then the default."""

    def __init__(self, *book_ids, default=ZERO_BOOK):
        self.book_ids = list(book_ids)
        self.default = default

    def push(self, *book_ids):
        self.book_ids.extend(book_ids)

    def choice(self, books):
        book_id = self.book_ids.pop(0) if self.book_ids else self.default
        for book in books:
            if book.id == book_id:
                return book
        raise AssertionError(f"book {book_id} not in catalogue")


@pytest.fixture
def catalogue():
    return OutcomeCatalogue.from_records(
        [
            book_record(ZERO_BOOK, 0.0),
            book_record(SMALL_WIN_BOOK, 1.7),
            book_record(BONUS_BOOK, 32.3, bonus=True),
        ]
    )


@pytest.fixture
def ledger():
    return BalanceLedger(STARTING_BALANCE)


@pytest.fixture
def rng():
    return ScriptedRng()


@pytest.fixture
def controller(catalogue, ledger, rng):
    return RoundController(catalogue, ledger, rng=rng)


@pytest.fixture
def db():
    engine = make_engine("sqlite://")
    init_db(engine)
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def make_client(catalogue):
    def _make(rng=None, **settings):
        app = create_app(Settings(**settings), catalogue=catalogue, rng=rng)
        return TestClient(app, raise_server_exceptions=False)

    return _make
