from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from provably_fair.db import engine
from provably_fair.exceptions import FairnessError, VerificationMismatchError
from provably_fair.load_secrets import log_level, seed_rotation_hours
from provably_fair.models.schemas import Base
from provably_fair.routers import fairness
from provably_fair.routers.fairness import fairness_engine

scheduler = AsyncIOScheduler()
logging.basicConfig(level=log_level)


async def create_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def scheduled_rotation() -> None:
    try:
        revealed_seed, new_seed = await fairness_engine.seed_manager.rotate_and_reveal()
        logging.info(f"Scheduled rotation revealed {revealed_seed.server_seed_id}, active {new_seed.server_seed_id}")
    except FairnessError as e:
        logging.error(f"Scheduled seed rotation failed: {e}")


@asynccontextmanager
async def lifespan(app):
    """Create the tables and the first server seed, then schedule rotation
    and the daily audit of revealed seeds.
    """
    await create_tables()
    active_seed = await fairness_engine.seed_manager.ensure_active_server_seed()
    logging.info(f"Active server seed {active_seed.server_seed_id} hash={active_seed.hashed_seed}")

    if seed_rotation_hours > 0:
        scheduler.add_job(scheduled_rotation, "interval", hours=seed_rotation_hours)
    scheduler.add_job(fairness_engine.verification_service.audit_seed_history, "interval", hours=24)
    scheduler.start()
    try:
        yield
    finally:
        scheduler.shutdown()
        await engine.dispose()
        logging.info("Stop Server")


async def fairness_error_handler(request: Request, exc: FairnessError) -> JSONResponse:
    if isinstance(exc, VerificationMismatchError):
        logging.critical(f"{request.method} {request.url.path}: {exc}")
    elif exc.status_code >= 500:
        logging.error(f"{request.method} {request.url.path}: {exc}")
    else:
        logging.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.public_detail})


app = FastAPI(lifespan=lifespan)
app.add_exception_handler(FairnessError, fairness_error_handler)
app.include_router(fairness.fairness_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
