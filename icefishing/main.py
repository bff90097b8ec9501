from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from redis.asyncio import Redis
from redis.exceptions import RedisError

from icefishing import load_secrets as secrets
from icefishing.dependencies import Services
from icefishing.domain.wheel_rules import OutcomeOracle, RoundClock
from icefishing.errors import (
    ExternalServiceUnavailable,
    IceFishingError,
    InsufficientFunds,
    NotConfigured,
    NotFound,
    StoreUnavailable,
    ValidationError,
)
from icefishing.routers.deposit import deposit_router
from icefishing.routers.game import game_router
from icefishing.services import now_ms
from icefishing.services.balance_ledger import BalanceLedger
from icefishing.services.bet_book import BetBook
from icefishing.services.deposit import DepositReconciler
from icefishing.services.history_ledger import HistoryLedger
from icefishing.services.round_state import RoundStateService
from icefishing.services.settlement import SettlementEngine
from icefishing.store import KeyValueStore
from icefishing.transfer_client import TonApiClient

logging.basicConfig(level=logging.INFO)

ERROR_STATUS = {
    ValidationError: 400,
    NotFound: 404,
    NotConfigured: 501,
    InsufficientFunds: 409,
    ExternalServiceUnavailable: 503,
    StoreUnavailable: 503,
}


def build_services(store: KeyValueStore, transfers: TonApiClient | None) -> Services:
    """Wire every component around one store handle."""
    clock = RoundClock(secrets.active_ms, secrets.cooldown_ms, secrets.last_completed_policy)
    oracle = OutcomeOracle(secrets.wheel_seed)
    balances = BalanceLedger(store)
    bets = BetBook(store, clock)
    history = HistoryLedger(
        store,
        oracle,
        clock,
        history_max=secrets.history_max,
        max_round_drift=secrets.max_round_drift,
    )
    deposits = None
    if secrets.treasury_address and transfers is not None:
        deposits = DepositReconciler(
            store,
            balances,
            transfers,
            secrets.treasury_address,
            intent_ttl_seconds=secrets.deposit_intent_ttl_seconds,
            min_observation_ms=secrets.deposit_min_observation_ms,
            time_tolerance_ms=secrets.deposit_time_tolerance_ms,
            query_limit=secrets.transfer_query_limit,
            resume_batch=secrets.deposit_resume_batch,
        )
    else:
        logging.warning("TREASURY_ADDRESS is not set, deposits are disabled")
    return Services(
        balances=balances,
        bets=bets,
        settlement=SettlementEngine(
            store, bets, balances, oracle, clock, batch_size=secrets.settle_batch
        ),
        rounds=RoundStateService(clock, oracle, history),
        deposits=deposits,
    )


@asynccontextmanager
async def lifespan(app):
    """Open the Redis and TonAPI handles and wire the services.
    This function is called to start the server.
    """
    redis = Redis.from_url(secrets.redis_url, decode_responses=True, health_check_interval=30)
    transfers = TonApiClient(
        base_url=secrets.tonapi_base_url,
        api_key=secrets.tonapi_key,
        timeout_seconds=secrets.tonapi_timeout_seconds,
    )
    services = build_services(KeyValueStore(redis), transfers)
    app.state.services = services

    scheduler = AsyncIOScheduler()

    async def refresh_history():
        try:
            await services.rounds.history.refresh(now_ms())
        except RedisError as e:
            logging.error(f"history refresh failed: {e}")

    # Keep the history cache warm even when nobody polls /state
    scheduler.add_job(
        refresh_history,
        "interval",
        seconds=max(1, services.rounds.clock.period_ms // 1000),
    )
    scheduler.start()
    try:
        yield
    finally:
        scheduler.shutdown()
        await transfers.close()
        await redis.aclose()
        logging.info("Stop Server")


app = FastAPI(lifespan=lifespan)
app.include_router(game_router)
app.include_router(deposit_router)


@app.exception_handler(IceFishingError)
async def handle_icefishing_error(request: Request, exc: IceFishingError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)), 500
    )
    content = {"error": exc.code, "message": str(exc)}
    if exc.retryable:
        content["retryable"] = True
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(RedisError)
async def handle_store_error(request: Request, exc: RedisError) -> JSONResponse:
    logging.error(f"store unavailable: {exc}")
    return await handle_icefishing_error(request, StoreUnavailable(str(exc)))


# if __name__ == "__main__":
#     uvicorn.run(app, host="0.0.0.0", port=8080, reload=True)
