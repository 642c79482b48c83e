import logging
from pathlib import Path
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.config import Settings, get_settings
from backend.database import init_db, set_db_path
from backend.routers import health, proxy, state

logger = logging.getLogger(__name__)

# Streamlit dev server
DEFAULT_ORIGINS = ["http://localhost:8501", "http://127.0.0.1:8501"]


def cors_origins(settings: Settings) -> list[str]:
    origins = list(DEFAULT_ORIGINS)
    origins.extend(
        o.strip() for o in settings.allowed_origins.split(",") if o.strip()
    )
    return origins


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    db_path = Path(settings.database_url)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    set_db_path(str(db_path))
    await init_db()
    logger.info(
        "Chat backend started: state in %s, default server %s",
        db_path, settings.ollama_default_server,
    )

    yield

    logger.info("Chat backend shutting down")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Ollama Chat API",
        description="Same-origin proxy and state store for the Ollama chat client",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(state.router)
    app.include_router(proxy.router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(settings),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


app = create_app()


@app.get("/")
async def read_root():
    return {
        "status": "ok",
        "proxy": "/ollama/{path}",
        "docs": "/docs",
    }
