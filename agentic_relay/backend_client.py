"""
Streaming client for the Copilot Studio Direct-to-Engine protocol.
"""

import asyncio
import copy
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

import aiohttp
from botbuilder.schema import Activity

from .config import CopilotStudioConfig
from .exceptions import BackendStreamError
from .models import FragmentKind, ResponseFragment

CONVERSATION_ID_HEADER = "x-ms-conversationid"

TokenProvider = Callable[[], Awaitable[str]]


def build_connection_url(settings: CopilotStudioConfig, conversation_id: Optional[str] = None) -> str:
    """Build the conversations endpoint, optionally for one conversation."""
    if settings.direct_connect_url:
        parts = urlsplit(settings.direct_connect_url)
        scheme, host, path = parts.scheme, parts.netloc, parts.path.rstrip("/")
    else:
        env = settings.environment_id.lower().replace("-", "")
        scheme = "https"
        host = f"{env[:-2]}.{env[-2:]}.environment.{settings.api_host}"
        path = f"/copilotstudio/dataverse-backed/authenticated/bots/{settings.schema_name}"

    if not path.endswith("/conversations"):
        path = f"{path}/conversations"
    if conversation_id:
        path = f"{path}/{conversation_id}"
    return urlunsplit((scheme, host, path, f"api-version={settings.api_version}", ""))


def serialize_activity(activity: Activity) -> Dict[str, Any]:
    """Serialize an activity, keeping undeclared entity properties."""
    entities = activity.entities or []
    stripped = copy.copy(activity)
    stripped.entities = None
    body = stripped.serialize()
    if entities:
        body["entities"] = [
            dict(entity) if isinstance(entity, dict)
            else {**(getattr(entity, "additional_properties", None) or {}), **entity.serialize()}
            for entity in entities
        ]
    return body


def to_fragment(activity: Activity) -> ResponseFragment:
    """Tag a backend activity with its fragment kind."""
    session_id = activity.conversation.id if activity.conversation and activity.conversation.id else None
    if activity.type == "message":
        kind = FragmentKind.MESSAGE
    elif session_id:
        kind = FragmentKind.SESSION_UPDATE
    else:
        kind = FragmentKind.OTHER
    return ResponseFragment(
        kind=kind,
        text=activity.text if kind == FragmentKind.MESSAGE else None,
        session_id=session_id,
        activity_type=activity.type,
    )


async def parse_event_stream(
    lines: AsyncIterator[bytes],
    stage: str,
    max_fragments: int,
) -> AsyncIterator[ResponseFragment]:
    """Yield fragments from a server-sent event stream as lines arrive."""
    event = None
    count = 0
    async for raw in lines:
        try:
            line = raw.decode("utf-8").rstrip("\r\n")
        except UnicodeDecodeError as e:
            raise BackendStreamError(
                "Backend stream is not valid UTF-8", stage, details={"data": repr(raw[:200])}
            ) from e
        if not line:
            event = None
            continue
        if line.startswith("event:"):
            event = line[len("event:"):].strip()
            if event == "end":
                return
            continue
        if not line.startswith("data:") or event != "activity":
            continue

        data = line[len("data:"):].strip()
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            raise BackendStreamError(
                "Malformed activity in backend stream", stage, details={"data": data[:200]}
            ) from e
        if not isinstance(payload, dict):
            raise BackendStreamError(
                "Unexpected activity payload in backend stream", stage, details={"data": data[:200]}
            )

        count += 1
        if count > max_fragments:
            raise BackendStreamError(
                f"Backend stream exceeded {max_fragments} activities", stage
            )
        yield to_fragment(Activity.deserialize(payload))


class CopilotStudioClient:
    """Client for one relay request against the Copilot Studio agent.

    Every call asks the token provider for a fresh bearer token and uses it
    for that call only.
    """

    def __init__(
        self,
        settings: CopilotStudioConfig,
        token_provider: TokenProvider,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.settings = settings
        self.token_provider = token_provider
        self.session = session
        self.logger = logging.getLogger(__name__)

    async def start_conversation(
        self, emit_start_conversation_event: bool = False
    ) -> AsyncIterator[ResponseFragment]:
        """Open a new backend conversation."""
        url = build_connection_url(self.settings)
        body = {"emitStartConversationEvent": emit_start_conversation_event}
        async for fragment in self._stream("start_conversation", url, body):
            yield fragment

    async def send_activity(
        self, activity: Activity, conversation_id: str
    ) -> AsyncIterator[ResponseFragment]:
        """Send one activity to an existing backend conversation."""
        url = build_connection_url(self.settings, conversation_id)
        body = {"activity": serialize_activity(activity)}
        headers = {CONVERSATION_ID_HEADER: conversation_id}
        async for fragment in self._stream("send_activity", url, body, headers):
            yield fragment

    async def _stream(
        self,
        stage: str,
        url: str,
        body: Dict[str, Any],
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator[ResponseFragment]:
        token = await self.token_provider()
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "text/event-stream",
            "Content-Type": "application/json",
        }
        if extra_headers:
            headers.update(extra_headers)

        timeout = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        owns_session = self.session is None
        session = aiohttp.ClientSession() if owns_session else self.session
        self.logger.info(f"[MCS] {stage} POST {url.split('?')[0]}")
        try:
            async with session.post(url, json=body, headers=headers, timeout=timeout) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise BackendStreamError(
                        f"Backend returned HTTP {response.status}",
                        stage,
                        status=response.status,
                        details={"body": text[:200]},
                    )
                async for fragment in parse_event_stream(
                    response.content, stage, self.settings.max_fragments
                ):
                    self.logger.debug(f"[MCS] {stage} received activity type: {fragment.activity_type}")
                    yield fragment
        except aiohttp.ClientError as e:
            raise BackendStreamError(f"Backend connection failed: {e}", stage) from e
        except asyncio.TimeoutError as e:
            raise BackendStreamError(
                f"Backend stream timed out after {self.settings.timeout_seconds}s", stage
            ) from e
        except ValueError as e:
            # aiohttp raises ValueError for lines over its buffer limit
            raise BackendStreamError(f"Malformed backend stream: {e}", stage) from e
        finally:
            if owns_session:
                await session.close()
