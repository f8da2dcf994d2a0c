import json
import logging
from typing import List, Type, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from . import models, schemas
from .catalogue import OutcomeCatalogue
from .config import API_AMOUNT_MULTIPLIER, Settings, build_game_config, load_settings
from .database import get_db, init_db, make_engine, make_session_factory
from .ledger import BalanceLedger, InsufficientBalanceError
from .rounds import Round, RoundController, RoundInProgressError


logger = logging.getLogger("rgs_server.main")

ModelT = TypeVar("ModelT", bound=BaseModel)

router = APIRouter()


async def read_body(request: Request) -> dict:
    """JSON object body, or ``{}`` for anything else."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        logger.info("%s %s: unparseable body ignored", request.method, request.url.path)
        return {}
    return data if isinstance(data, dict) else {}


def parse_lenient(model: Type[ModelT], body: dict) -> ModelT:
    """Validate ``body``, dropping fields that fail until the rest validates."""
    data = dict(body)
    while True:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            bad = {err["loc"][0] for err in exc.errors() if err["loc"]} & set(data)
            if not bad:
                return model()
            for key in bad:
                data.pop(key)


def get_controller(request: Request) -> RoundController:
    return request.app.state.controller


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_admin(request: Request, admin_secret: str | None = Header(None)):
    if admin_secret != request.app.state.settings.admin_secret:
        raise HTTPException(status_code=401, detail="Admin unauthorized")


def log_game_event(
    db: Session,
    game_id: str | None,
    action: str,
    detail: dict | str,
    round_id: int | None = None,
    commit: bool = True,
) -> models.GameLog:
    detail_str = (
        json.dumps(detail, ensure_ascii=False) if isinstance(detail, (dict, list)) else str(detail)
    )
    log = models.GameLog(game_id=game_id, round_id=round_id, action=action, detail=detail_str)
    db.add(log)
    if commit:
        db.commit()
    return log


def balance_item(controller: RoundController) -> schemas.BalanceItem:
    return schemas.BalanceItem(amount=controller.balance(), currency=controller.ledger.currency)


def round_item(value: Round) -> schemas.RoundItem:
    return schemas.RoundItem.model_validate(value.to_dict())


@router.post("/wallet/authenticate", response_model=schemas.AuthenticateResponse)
def wallet_authenticate(
    request: Request,
    body: dict = Depends(read_body),
    controller: RoundController = Depends(get_controller),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    logger.info("POST /wallet/authenticate %s", body)
    payload = parse_lenient(schemas.AuthenticateRequest, body)
    with controller.lock:
        balance = controller.authenticate(db=db)
        log_game_event(
            db, settings.game_id, "authenticate", {"session_id": payload.session_id, "balance": balance}, commit=False
        )
        db.commit()
    return schemas.AuthenticateResponse(
        balance=schemas.BalanceItem(amount=balance, currency=controller.ledger.currency),
        config=request.app.state.game_config,
        round=None,
    )


@router.post("/wallet/play", response_model=schemas.PlayResponse)
def wallet_play(
    body: dict = Depends(read_body),
    controller: RoundController = Depends(get_controller),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    logger.info("POST /wallet/play %s", body)
    payload = parse_lenient(schemas.PlayRequest, body)
    amount = payload.amount or controller.default_bet
    mode = payload.mode or "BASE"
    with controller.lock:
        try:
            placed, balance = controller.bet(amount, mode, db=db)
        except RoundInProgressError as exc:
            logger.warning("play rejected: %s", exc)
            raise HTTPException(status_code=400, detail=str(exc))
        except InsufficientBalanceError as exc:
            db.commit()
            logger.warning("play rejected: %s", exc)
            raise HTTPException(status_code=400, detail="Insufficient balance.")
        log_game_event(
            db,
            settings.game_id,
            "play",
            {
                "book_id": placed.book_id,
                "amount": placed.amount,
                "payout": placed.payout,
                "active": placed.active,
                "mode": placed.mode,
                "balance": balance,
            },
            round_id=placed.round_id,
            commit=False,
        )
        db.commit()
    return schemas.PlayResponse(
        balance=schemas.BalanceItem(amount=balance, currency=payload.currency or controller.ledger.currency),
        round=round_item(placed),
    )


@router.post("/wallet/end-round", response_model=schemas.BalanceResponse)
def wallet_end_round(
    body: dict = Depends(read_body),
    controller: RoundController = Depends(get_controller),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    logger.info("POST /wallet/end-round %s", body)
    payload = parse_lenient(schemas.EndRoundRequest, body)
    with controller.lock:
        balance = controller.close_round(db=db)
        log_game_event(
            db, settings.game_id, "end-round", {"session_id": payload.session_id, "balance": balance}, commit=False
        )
        db.commit()
    return schemas.BalanceResponse(
        balance=schemas.BalanceItem(amount=balance, currency=controller.ledger.currency)
    )


@router.post("/wallet/balance", response_model=schemas.BalanceResponse)
def wallet_balance(body: dict = Depends(read_body), controller: RoundController = Depends(get_controller)):
    payload = parse_lenient(schemas.BalanceRequest, body)
    logger.info("POST /wallet/balance session=%s", payload.session_id)
    return schemas.BalanceResponse(balance=balance_item(controller))


@router.post("/bet/event", response_model=schemas.EventResponse)
def bet_event(body: dict = Depends(read_body), controller: RoundController = Depends(get_controller)):
    logger.info("POST /bet/event %s", body)
    payload = parse_lenient(schemas.EventRequest, body)
    return schemas.EventResponse(event=controller.record_event(payload.event or "0"))


@router.post("/bet/action", response_model=schemas.ActionResponse)
def bet_action(body: dict = Depends(read_body), controller: RoundController = Depends(get_controller)):
    logger.info("POST /bet/action %s", body)
    current = controller.current_round
    return schemas.ActionResponse(
        balance=balance_item(controller),
        action=round_item(current) if current is not None else None,
    )


@router.post("/session/start", response_model=schemas.AckResponse)
def session_start():
    return schemas.AckResponse()


@router.post("/game/search", response_model=schemas.GameSearchResponse)
def game_search(controller: RoundController = Depends(get_controller)):
    return schemas.GameSearchResponse(balance=balance_item(controller))


@router.get("/bet/replay/{replay_path:path}", response_model=schemas.RoundItem)
def bet_replay(replay_path: str, controller: RoundController = Depends(get_controller)):
    logger.info("GET /bet/replay/%s", replay_path)
    return round_item(controller.replay())


@router.get("/", response_model=schemas.HealthResponse)
@router.get("/health", response_model=schemas.HealthResponse)
def health(controller: RoundController = Depends(get_controller), settings: Settings = Depends(get_settings)):
    return schemas.HealthResponse(
        message=f"{settings.variant_info['label']} is running",
        balance=controller.balance() / API_AMOUNT_MULTIPLIER,
    )


@router.get("/api/admin/transactions", response_model=List[schemas.TransactionItem])
def admin_transactions(
    limit: int = 100,
    round_id: int | None = None,
    db: Session = Depends(get_db),
    controller: RoundController = Depends(get_controller),
    admin=Depends(require_admin),
):
    query = db.query(models.Transaction)
    if round_id is not None:
        query = query.filter(models.Transaction.round_id == round_id)
    with controller.lock:
        rows = query.order_by(models.Transaction.id.desc()).limit(limit).all()
        items = [schemas.TransactionItem.model_validate(row) for row in rows]
        db.close()
    return items


@router.get("/api/admin/game_logs", response_model=List[schemas.GameLogItem])
def admin_game_logs(
    limit: int = 100,
    db: Session = Depends(get_db),
    controller: RoundController = Depends(get_controller),
    admin=Depends(require_admin),
):
    with controller.lock:
        rows = db.query(models.GameLog).order_by(models.GameLog.id.desc()).limit(limit).all()
        items = [schemas.GameLogItem.model_validate(row) for row in rows]
        db.close()
    return items


@router.options("/{path:path}", include_in_schema=False)
def preflight(path: str) -> Response:
    return Response(status_code=204)


@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def unknown_route(path: str, request: Request):
    logger.info("Unhandled %s /%s", request.method, path)
    return schemas.AckResponse().model_dump(by_alias=True)


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Error handling %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal mock server error"})


def create_app(
    settings: Settings | None = None,
    catalogue: OutcomeCatalogue | None = None,
    rng=None,
) -> FastAPI:
    """Build the app. Also usable as ``uvicorn --factory rgs_server.main:create_app``."""
    settings = settings or load_settings()
    if catalogue is None:
        catalogue = OutcomeCatalogue.for_variant(settings.variant)
    ledger = BalanceLedger(
        settings.starting_balance,
        currency=settings.currency,
        allow_negative=settings.allow_negative_balance,
    )
    controller = RoundController(
        catalogue,
        ledger,
        open_round_policy=settings.open_round_policy,
        rng=rng,
        default_bet=settings.default_bet,
    )
    engine = make_engine(settings.database_url)
    init_db(engine)

    app = FastAPI(
        title=settings.variant_info["label"],
        description="Local stand-in for the RGS wallet protocol, serving pre-recorded outcome books.",
    )
    app.state.settings = settings
    app.state.controller = controller
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.game_config = schemas.GameConfigItem.model_validate(build_game_config(settings))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.add_exception_handler(Exception, internal_error_handler)
    app.include_router(router)
    return app
