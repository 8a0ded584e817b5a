import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from neyma.core.config import get_settings
from neyma.schemas.notification import (
    AdminNotification,
    NotifyAdminError,
    NotifyAdminResponse,
)
from neyma.services.admin_notification import notify_admin

logger = logging.getLogger(__name__)

# Same path as the Supabase edge function it stands in for.
router = APIRouter(prefix="/functions/v1", tags=["Functions"])


@router.post(
    "/notify-admin",
    response_model=NotifyAdminResponse,
    responses={500: {"model": NotifyAdminError}},
)
def notify_admin_endpoint(payload: AdminNotification):
    """
    Record a new order for the shop admin.

    Returns `success: false` with status 500 if the admin could not be
    notified.
    """
    try:
        return notify_admin(payload, admin_email=get_settings().ADMIN_EMAIL)
    except Exception as exc:
        logger.exception("Error processing notification for order %s", payload.order_data.order_id)
        error = NotifyAdminError(error="Failed to notify admin", message=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error.model_dump(by_alias=True),
        )
