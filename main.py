import sys
import time

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from loguru import logger

from ledgerbot.api.routes import router
from ledgerbot.config import get_settings
from ledgerbot.errors import LedgerError

settings = get_settings()

# Configure loguru
logger.remove()
logger.add(sys.stderr, level=settings.log_level, format="{time:HH:mm:ss} | {level:<7} | {message}")

app = FastAPI(title="Ledgerbot", version="0.1.0")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response: Response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("{} {} → {} ({:.0f} ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    logger.warning("{} {} failed: {}", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(router)


@app.on_event("startup")
async def startup():
    """Start the group directory worker and the pending-expense reaper."""
    from ledgerbot.deps import get_directory, get_reaper

    if not settings.zapi_instance_id or not settings.zapi_token:
        logger.warning("Z-API credentials not set; group directory will stay empty")
    else:
        get_directory().start()
    get_reaper().start()


@app.on_event("shutdown")
async def shutdown():
    """Stop background workers and close the gateway client."""
    from ledgerbot.deps import get_directory, get_gateway, get_reaper

    await get_directory().stop()
    await get_reaper().stop()
    await get_gateway().aclose()
    logger.info("Background workers stopped")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
