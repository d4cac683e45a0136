"""FastAPI dependencies shared across Idea Bank endpoints."""

from typing import Optional

from fastapi import Header, HTTPException, Request

from ideabank.config import logger
from ideabank.services.idea_bank_service import IdeaBankService


async def get_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> str:
    """
    Resolve the caller's user id.
    The upstream auth layer sets ``X-User-Id`` after verifying the session.
    """
    if not x_user_id or not x_user_id.strip():
        logger.debug("Request rejected without user id")
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id.strip()


def get_idea_bank_service(request: Request) -> IdeaBankService:
    service = getattr(request.app.state, "idea_bank_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Idea Bank service is not ready")
    return service
