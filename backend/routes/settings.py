"""Health check and engine settings endpoints."""

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from backend import state

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings():
    """Get engine settings and the model capability registry."""
    return state.get_settings()


@router.patch("/settings")
async def update_settings(body: dict):
    """Update engine settings and model entries (partial merge)."""
    try:
        return state.update_settings(body)
    except ValidationError as e:
        raise HTTPException(422, str(e))
