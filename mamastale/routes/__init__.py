"""FastAPI API endpoints under /api.

Endpoint groups: health + rate-limit admission (settings), chat turn and
scene extraction (chat). The chat endpoint runs, in order: identity,
rate limiter, guest turn ceiling, stage pipeline.
"""

from fastapi import APIRouter

from .chat import router as chat_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(chat_router)
