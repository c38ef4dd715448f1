from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from mamastale.config import reload_config
from mamastale.ratelimit import reset_limiters
from mamastale.routes import router

load_dotenv(Path(__file__).parent.parent / ".env")


def create_app() -> FastAPI:
    # Fresh config and empty limiter tables for every app instance
    reload_config()
    reset_limiters()

    app = FastAPI(title="mamastale")
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses MAMASTALE_CONFIG / env vars)
app = create_app()
