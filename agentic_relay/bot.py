"""
Bot Framework activity handler that relays turns to the Copilot Studio agent.
"""

import logging

from botbuilder.core import ActivityHandler, TurnContext

from .credentials import request_context_from_turn
from .exceptions import ClassificationSkip
from .relay import RelayCore
from .router import NotificationRouter


class RelayBot(ActivityHandler):
    """Channel-facing bot for the agentic relay."""

    def __init__(self, relay: RelayCore, router: NotificationRouter = None, connection_name: str = ""):
        """Initialize the bot."""
        self.relay = relay
        self.router = router or NotificationRouter()
        self.connection_name = connection_name
        self.logger = logging.getLogger(__name__)

    async def on_message_activity(self, turn_context: TurnContext):
        """Handle incoming chat messages and message-borne notifications."""
        await self._relay_turn(turn_context)

    async def on_event_activity(self, turn_context: TurnContext):
        """Handle notifications delivered as event activities."""
        await self._relay_turn(turn_context)

    async def _relay_turn(self, turn_context: TurnContext):
        activity = turn_context.activity
        sender = activity.from_property.name if activity.from_property else None
        self.logger.info(f"[RELAY] Turn started - Channel: {activity.channel_id}, From: {sender}")

        try:
            inbound = self.router.classify(activity)
        except ClassificationSkip as skip:
            self.logger.debug(f"[RELAY] Ignoring activity: {skip}")
            return

        try:
            request_context = await request_context_from_turn(turn_context, self.connection_name)
            await self.relay.handle(turn_context, inbound, request_context)
        except Exception as e:
            self.logger.error(f"[RELAY] Error relaying {inbound.kind.value}: {e}")
            raise
