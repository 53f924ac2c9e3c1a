"""Client WebSocket consumer for order status notifications."""

import logging

from .base import BaseConsumer
from accounts.models import UserRole
from realtime.notifications import ADMINS_GROUP

logger = logging.getLogger(__name__)


class ClientConsumer(BaseConsumer):
    """
    WebSocket consumer for clients, establishments and admins.

    Everyone joins user_<id>; admins also join the admins group to hear about
    orders no delivery person accepted.
    """

    def allowed(self) -> bool:
        return self.role in (UserRole.CLIENT, UserRole.ESTABLISHMENT) or self.user.is_admin_role

    async def on_connect(self):
        await super().on_connect()
        if self.user.is_admin_role:
            await self._join_group(ADMINS_GROUP)
            logger.debug("Admin %s subscribed to %s", self.user_id, ADMINS_GROUP)

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def order_accepted(self, event):
        await self.forward_event(event)

    async def order_status_changed(self, event):
        await self.forward_event(event)

    async def order_exhausted(self, event):
        await self.forward_event(event)
