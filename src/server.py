import logging

from fastapi import FastAPI, HTTPException
from fastapi.responses import ORJSONResponse

from config.config import Config
from config.logging_config import setup_logging
from contracts.health_response import HealthResponse
from core.chaos_middleware import CHAOS_MODES, ChaosMiddleware, ChaosState

# Set up logging at the start of the module
setup_logging()
logger = logging.getLogger(__name__)

identity_headers = {
    Config.POOL_HEADER: Config.APP_POOL,
    Config.RELEASE_HEADER: Config.RELEASE_ID,
}

chaos_state = ChaosState(delay=Config.CHAOS_TIMEOUT_DELAY)

app = FastAPI(default_response_class=ORJSONResponse)
app.add_middleware(ChaosMiddleware, chaos_state=chaos_state)


@app.middleware("http")
async def attach_identity(request, call_next):
    response = await call_next(request)
    for key, value in identity_headers.items():
        response.headers[key] = value
    return response


def _identity(status: str) -> HealthResponse:
    return HealthResponse(status=status, pool=Config.APP_POOL, release=Config.RELEASE_ID)


@app.get("/")
async def read_root():
    return {"message": f"Hello from pool {Config.APP_POOL} ({Config.RELEASE_ID})!"}


@app.get("/version", response_model=HealthResponse)
async def version():
    return _identity("ok")


@app.get("/healthz", response_model=HealthResponse)
async def healthz():
    return _identity("ok")


@app.post("/chaos/start", response_model=HealthResponse)
async def chaos_start(mode: str = "error"):
    if mode not in CHAOS_MODES:
        raise HTTPException(status_code=400, detail=f"mode must be one of {list(CHAOS_MODES)}")
    chaos_state.start(mode)
    return _identity(f"chaos:{mode}")


@app.post("/chaos/stop", response_model=HealthResponse)
async def chaos_stop():
    chaos_state.stop()
    return _identity("ok")


logger.info(f"Backend server module loaded for pool {Config.APP_POOL} ({Config.RELEASE_ID}).")
