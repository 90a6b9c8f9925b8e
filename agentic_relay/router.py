"""
Classification of inbound channel activities into relay notification kinds.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from botbuilder.schema import Activity

from .exceptions import ClassificationSkip
from .models import InboundActivity, NotificationKind

logger = logging.getLogger(__name__)


class NotificationRouter:
    """Determines the notification kind of an inbound activity."""

    def __init__(self):
        # Entity types (lower-cased) carried by notification activities
        self.notification_entities = {
            "emailnotification": NotificationKind.EMAIL_NOTIFICATION,
            "wpxcomment": NotificationKind.DOCUMENT_COMMENT,
            "agentlifecyclenotification": NotificationKind.UNKNOWN,
            "federatedknowledgeservicenotification": NotificationKind.UNKNOWN,
        }

    @staticmethod
    def _entity_properties(entity: Any) -> Dict[str, Any]:
        if isinstance(entity, dict):
            return dict(entity)
        properties = dict(getattr(entity, "additional_properties", None) or {})
        properties["type"] = entity.type
        return properties

    def _find_notification(
        self, entities: List[Any]
    ) -> Tuple[Optional[NotificationKind], Optional[Dict[str, Any]]]:
        for entity in entities:
            properties = self._entity_properties(entity)
            entity_type = str(properties.get("type") or "").lower()
            if entity_type in self.notification_entities:
                metadata = {k: v for k, v in properties.items() if k != "type"}
                return self.notification_entities[entity_type], metadata
        return None, None

    def classify(self, activity: Activity) -> InboundActivity:
        """
        Normalize an inbound activity.

        Raises:
            ClassificationSkip: the activity is not something the backend can
                act on. Callers treat this as a no-op.
        """
        kind, metadata = self._find_notification(activity.entities or [])

        if kind is None:
            if activity.type != "message":
                raise ClassificationSkip(str(activity.type), "unsupported activity type")
            kind = NotificationKind.CHAT_MESSAGE
        elif kind == NotificationKind.UNKNOWN:
            raise ClassificationSkip(kind.value)

        conversation_id = activity.conversation.id if activity.conversation else None
        if not conversation_id:
            raise ClassificationSkip(kind.value, "activity has no conversation id")

        logger.debug(f"Classified activity {activity.id} as {kind.value}")
        return InboundActivity(
            kind=kind,
            activity=activity,
            channel_id=activity.channel_id,
            conversation_id=conversation_id,
            sender=activity.from_property.serialize() if activity.from_property else None,
            text=activity.text,
            metadata=metadata,
        )
