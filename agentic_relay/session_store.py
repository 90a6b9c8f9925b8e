"""
Conversation-to-backend-session mapping on top of Bot Framework storage.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from botbuilder.core import MemoryStorage, Storage

from .config import StorageConfig
from .models import SessionRecord

logger = logging.getLogger(__name__)

KEY_PREFIX = "relay/sessions/"


class SessionStore:
    """Stores the backend session identifier for each channel conversation.

    Writes use the wildcard e-tag, so concurrent updates to the same
    conversation resolve as last-write-wins. Each conversation has its own
    key, so different conversations never touch each other's records.
    """

    def __init__(self, storage: Optional[Storage] = None):
        self.storage = storage if storage is not None else MemoryStorage()

    @staticmethod
    def _key(conversation_id: str) -> str:
        return f"{KEY_PREFIX}{conversation_id}"

    async def get_record(self, conversation_id: str) -> Optional[SessionRecord]:
        key = self._key(conversation_id)
        items = await self.storage.read([key])
        item = items.get(key)
        if not item:
            return None
        if not isinstance(item, dict):
            item = vars(item)
        if not item.get("session_id"):
            return None
        return SessionRecord(session_id=item["session_id"], updated_at=item["updated_at"])

    async def get(self, conversation_id: str) -> Optional[str]:
        record = await self.get_record(conversation_id)
        return record.session_id if record else None

    async def set(self, conversation_id: str, session_id: str) -> SessionRecord:
        record = SessionRecord(session_id=session_id, updated_at=datetime.now(timezone.utc))
        await self.storage.write({
            self._key(conversation_id): {
                "session_id": record.session_id,
                "updated_at": record.updated_at.isoformat(),
                "e_tag": "*",
            }
        })
        logger.debug(f"Stored session {session_id} for conversation {conversation_id}")
        return record


def create_storage(config: StorageConfig) -> Storage:
    """Build the storage backend named in the configuration."""
    backend = config.backend.lower()
    if backend == "memory":
        return MemoryStorage()
    if backend == "blob":
        if not config.connection_string:
            raise ValueError("STORAGE_CONNECTION_STRING is required for blob storage")
        from botbuilder.azure import BlobStorage, BlobStorageSettings

        return BlobStorage(
            BlobStorageSettings(
                container_name=config.container_name,
                connection_string=config.connection_string,
            )
        )
    raise ValueError(f"Unsupported storage backend: {config.backend}")
