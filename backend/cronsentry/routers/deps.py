"""Shared router dependencies."""
from typing import Optional

from fastapi import Header, HTTPException

from ..exceptions import ConfigurationError
from ..utils.security import validate_monitor_url_async


async def get_owner_id(x_owner_id: str = Header(None)) -> str:
    """Owner of the requested entities, set by the auth layer in front of us."""
    if not x_owner_id:
        raise HTTPException(status_code=401, detail="Missing X-Owner-Id header")
    return x_owner_id


async def validate_webhook_target(url: Optional[str]) -> None:
    """Alert webhooks are outbound requests too, so they get the probe URL rules."""
    if not url:
        return
    try:
        await validate_monitor_url_async(url)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=f"webhook_url: {e}")
