"""API route handlers for the Bridge connector."""
import time
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, Response

from connector.logging import get_logger
from connector.schemas import InboundEvent
from connector.services.hooks import HooksService

logger = get_logger(__name__)

router = APIRouter(tags=["hooks"])


def get_hooks_service(request: Request) -> HooksService:
    """Dependency returning the HooksService built at startup."""
    return request.app.state.hooks_service


@router.post("/hooks", status_code=204, response_class=Response)
async def handle_webhook(
    event: InboundEvent,
    x_hub_signature: Optional[str] = Header(None),
    hooks: HooksService = Depends(get_hooks_service),
):
    """
    Receive an Algoan subscription event.

    The event is authenticated synchronously; the matching workflow runs
    in the background. Algoan gets a 204 as soon as the event is accepted,
    or when it belongs to a subscription the connector does not handle.
    """
    start_time = time.perf_counter()

    logger.info(
        "webhook_received",
        event_id=event.id,
        subscription_id=event.subscription.id,
        event_name=event.event_name,
    )

    task = await hooks.handle_webhook(event, x_hub_signature)

    logger.info(
        "webhook_accepted" if task is not None else "webhook_skipped",
        event_id=event.id,
        duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
    )

    return Response(status_code=204)
