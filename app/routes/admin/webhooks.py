"""
Admin routes for stored payment webhooks
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.security import CallerIdentity
from app.routes.dependencies import get_reconciliation_service, require_admin
from app.schemas.payment import WebhookAck
from app.services.reconciliation_service import ReconciliationService

router = APIRouter(
    prefix="/admin/api/webhooks",
    tags=["admin-webhooks"]
)


@router.post("/{event_ref}/replay", response_model=WebhookAck)
def replay_webhook(
    event_ref: str,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
):
    """Re-run a webhook delivery that failed or was never processed"""
    event = reconciliation.replay_webhook_event(db, admin, event_ref)
    return WebhookAck(status=event.status.value, event_ref=event.uuid)
