"""Status changes pushed by the web app (proposal viewed, accepted, rejected)."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from proposal_bot.config import settings
from proposal_bot.database import get_db
from proposal_bot.logging_config import get_logger
from proposal_bot.schemas.webhook import ProposalStatusNotification, ProposalStatusNotificationResponse
from proposal_bot.services.proposal_service import build_status_notification, notify_operator, update_proposal_status

logger = get_logger("notifications")

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.notifications_admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="NOTIFICATIONS_ADMIN_TOKEN not configured")
    if provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


@router.post("/proposal-status", response_model=ProposalStatusNotificationResponse)
def proposal_status_changed(
    request: ProposalStatusNotification,
    db: Session = Depends(get_db),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)

    result = update_proposal_status(db, request.proposal_id, request.status)
    if not result.ok:
        status_code = 404 if result.error_code == "not_found" else 400
        raise HTTPException(status_code=status_code, detail=result.error)

    proposal = result.value
    db.commit()

    text = build_status_notification(proposal)
    if not text:
        return ProposalStatusNotificationResponse(success=True, message="Status updated")

    delivered = notify_operator(db, proposal.user_id, text)
    logger.info(f"Proposal {proposal.id} status={proposal.status}, notified {delivered} channel(s)")
    return ProposalStatusNotificationResponse(success=True, message="Status updated", notified_channels=delivered)
