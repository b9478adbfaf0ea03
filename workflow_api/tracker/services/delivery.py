"""
Delivery-note collaborator notified when a release is approved.

The workflow only promises to call ``notify_approved`` once per transition
into APPROVED, after the approval is committed. Whatever the notifier does
with the request (a websocket push here, a queue in other deployments) is
outside the transaction and cannot undo the approval.
"""
from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

from tracker.core.settings import get_app_settings
from tracker.schemas.realtime import DeliveryRequest
from tracker.services.realtime import BroadcastManager, broadcast_manager

logger = logging.getLogger(__name__)


class DeliveryNotifier(Protocol):
    async def notify_approved(self, tenant_id: UUID, request: DeliveryRequest) -> None:
        ...


class BroadcastDeliveryNotifier:
    """Publishes ``delivery.requested`` on the tenant's delivery websocket topic."""

    def __init__(self, manager: BroadcastManager = broadcast_manager) -> None:
        self.manager = manager

    async def notify_approved(self, tenant_id: UUID, request: DeliveryRequest) -> None:
        await self.manager.publish_delivery_request(tenant_id, request)
        logger.info(
            "Delivery requested for release %s (inspection %s, qty %s)",
            request.release_id,
            request.inspection_id,
            request.approved_quantity,
        )


class DisabledDeliveryNotifier:
    async def notify_approved(self, tenant_id: UUID, request: DeliveryRequest) -> None:
        logger.debug("Delivery notifications disabled; skipping release %s", request.release_id)


# PUBLIC_INTERFACE
def get_delivery_notifier() -> DeliveryNotifier:
    """FastAPI dependency returning the configured notifier."""
    if get_app_settings().DELIVERY_NOTIFICATIONS_ENABLED:
        return BroadcastDeliveryNotifier()
    return DisabledDeliveryNotifier()
