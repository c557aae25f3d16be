import logging.config

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.metrics import router as metrics_router
from app.api.pages import router as pages_router
from app.api.routes import router as api_router
from app.api.ws import router as ws_router
from app.config import get_settings
from meshcall.signaling.gateway import get_gateway, shutdown_signaling, startup_signaling


settings = get_settings()

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        }
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }
    },
    "root": {
        "handlers": ["default"],
        "level": settings.log_level.upper(),
    },
    "loggers": {
        "uvicorn.access": {
            "level": "WARNING",
        },
        "meshcall": {
            "level": settings.log_level.upper(),
        },
    },
}


logging.config.dictConfig(LOGGING_CONFIG)

app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_origin_regex=settings.cors_allow_origin_regex,
)


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, object]:
    """Health check with a coarse view of the signaling state."""
    rooms = await get_gateway().rooms_overview()
    return {
        "status": "ok",
        "environment": settings.environment,
        "rooms": len(rooms),
        "participants": sum(len(members) for members in rooms.values()),
    }


@app.on_event("startup")
async def _startup() -> None:
    await startup_signaling()


@app.on_event("shutdown")
async def _shutdown() -> None:
    await shutdown_signaling()


app.include_router(api_router, prefix="/api")
app.include_router(ws_router)
app.include_router(metrics_router)
# Catch-all room routes go last so they never shadow the routes above.
app.include_router(pages_router)


def run() -> None:
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port, log_config=None)
