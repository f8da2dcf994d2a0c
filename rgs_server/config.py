import os
from pathlib import Path
from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError


BASE_DIR = Path(__file__).resolve().parent
BOOKS_DIR = BASE_DIR / "books"

# Wallet amounts are integers: 1 currency unit == 1_000_000 minor units.
API_AMOUNT_MULTIPLIER = 1_000_000
# Win amounts inside books are centi-units relative to a 1-unit bet.
BOOK_AMOUNT_MULTIPLIER = 100

BET_LEVELS: List[int] = [
    100000, 200000, 300000, 500000, 700000, 1000000, 1500000, 2000000, 3000000,
    5000000, 7000000, 10000000, 15000000, 20000000, 30000000, 50000000,
    70000000, 100000000, 150000000, 200000000, 300000000, 500000000,
    700000000, 1000000000,
]
STEP_BET = 100000
DEFAULT_BET_LEVEL = 1000000

JURISDICTION: Dict[str, object] = {
    "socialCasino": False,
    "disabledFullscreen": False,
    "disabledTurbo": False,
    "disabledSuperTurbo": False,
    "disabledAutoplay": False,
    "disabledSlamstop": False,
    "disabledSpacebar": False,
    "disabledBuyFeature": False,
    "displayNetPosition": False,
    "displayRTP": False,
    "displaySessionTimer": False,
    "minimumRoundDuration": 0,
}

VARIANTS: Dict[str, dict] = {
    "lines": {
        "game_id": "mock-lines",
        "label": "Mock RGS Server",
        "books": "lines.json",
        "port": 3456,
        "bet_modes": {},
    },
    "ways": {
        "game_id": "mock-ways",
        "label": "Mock RGS Server (Ways)",
        "books": "ways.json",
        "port": 3457,
        "bet_modes": {"BASE": {"cost": 1}, "BONUS": {"cost": 100}},
    },
}

Variant = Literal["lines", "ways"]
OpenRoundPolicyName = Literal["discard", "reject", "settle"]


class Settings(BaseModel):
    variant: Variant = "lines"
    host: str = "127.0.0.1"
    port: int | None = None
    starting_balance: int = 10_000 * API_AMOUNT_MULTIPLIER
    currency: str = "USD"
    default_bet: int = Field(default=DEFAULT_BET_LEVEL, gt=0)
    database_url: str = "sqlite://"
    open_round_policy: OpenRoundPolicyName = "discard"
    allow_negative_balance: bool = True
    admin_secret: str = "adminpass"
    log_level: str = "INFO"

    model_config = ConfigDict(frozen=True)

    @property
    def variant_info(self) -> dict:
        return VARIANTS[self.variant]

    @property
    def game_id(self) -> str:
        return self.variant_info["game_id"]

    @property
    def books_path(self) -> Path:
        return BOOKS_DIR / self.variant_info["books"]

    @property
    def effective_port(self) -> int:
        return self.port if self.port is not None else self.variant_info["port"]


# RGS_<FIELD> environment variables, e.g. RGS_VARIANT=ways, RGS_STARTING_BALANCE=5000000
ENV_PREFIX = "RGS_"


def _env_overrides() -> dict:
    values = {}
    for name in Settings.model_fields:
        raw = os.environ.get(ENV_PREFIX + name.upper())
        if raw is not None and raw.strip() != "":
            values[name] = raw.strip()
    return values


def load_settings(**overrides) -> Settings:
    """Build settings from defaults, then RGS_* environment variables, then explicit overrides.

    Raises ``ValueError`` with the offending keys when a value does not validate.
    """
    values = _env_overrides()
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return Settings(**values)
    except ValidationError as exc:
        bad = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise ValueError(f"Invalid RGS settings: {bad}") from exc


def build_game_config(settings: Settings) -> dict:
    """Static configuration returned to the client on authenticate."""
    return {
        "gameID": settings.game_id,
        "minBet": BET_LEVELS[0],
        "maxBet": BET_LEVELS[-1],
        "stepBet": STEP_BET,
        "defaultBetLevel": DEFAULT_BET_LEVEL,
        "betLevels": list(BET_LEVELS),
        "betModes": {mode: dict(cost) for mode, cost in settings.variant_info["bet_modes"].items()},
        "jurisdiction": dict(JURISDICTION),
    }
