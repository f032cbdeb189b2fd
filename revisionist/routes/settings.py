"""Health check and settings endpoints."""

from fastapi import APIRouter

from revisionist import config

from .models import UpdateSettings

router = APIRouter()


def _masked(cfg: dict) -> dict:
    conn = dict(cfg["llm_connection"])
    if conn.get("api_key"):
        conn["api_key"] = "***"
    return {**cfg, "llm_connection": conn}


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings():
    """Get app settings (API key masked). Changes apply to new sessions."""
    return _masked(config.get_config())


@router.patch("/settings")
async def update_settings(body: UpdateSettings):
    """Update app settings (partial merge)."""
    fields = body.model_dump(exclude_none=True)
    return _masked(config.update_config(fields))
