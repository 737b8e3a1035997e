"""FastAPI API endpoints under /api.

Endpoint groups: settings (health, engine settings + model registry) and
context (assembly, stats, active path, stored stories).
"""

from fastapi import APIRouter

from .context import router as context_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(context_router)
