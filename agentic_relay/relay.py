"""
Relay core: forwards channel activities to the Copilot Studio agent and
replies with its aggregated response.
"""

import copy
import json
import logging
from functools import partial
from typing import Callable, List, Optional

import aiohttp
from botbuilder.core import TurnContext
from botbuilder.schema import Activity, ActivityTypes, ConversationAccount

from .backend_client import CopilotStudioClient
from .config import CopilotStudioConfig
from .credentials import CredentialExchanger, RequestContext
from .exceptions import BackendStreamError
from .models import FragmentKind, InboundActivity, ResponseFragment
from .replies import build_reply
from .session_store import SessionStore

ClientFactory = Callable[[RequestContext], CopilotStudioClient]


def info_block(label: str, value) -> str:
    """Wrap system-supplied context so the agent can tell it from user text."""
    return f"<info>{label}:{json.dumps(value, default=str)}</info>"


class RelayCore:
    """Orchestrates one relay exchange per inbound activity.

    Requests sharing a conversation are not serialized. The session store is
    last-write-wins, so an out-of-order reply may briefly overwrite a newer
    session id; the backend re-supplies its authoritative id on each exchange.
    """

    def __init__(
        self,
        settings: CopilotStudioConfig,
        session_store: SessionStore,
        credential_exchanger: Optional[CredentialExchanger] = None,
        client_factory: Optional[ClientFactory] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        self.settings = settings
        self.session_store = session_store
        self.credential_exchanger = credential_exchanger
        self.client_factory = client_factory or self._create_client
        self.http_session = http_session
        self.logger = logging.getLogger(__name__)

    def _create_client(self, request_context: RequestContext) -> CopilotStudioClient:
        """Client whose every call exchanges the turn's credential afresh."""
        if self.credential_exchanger is None:
            raise ValueError("A credential exchanger is required to create backend clients")
        scopes = [self.settings.scope]
        self.logger.info(f"[MCS] Scopes for token exchange: {', '.join(scopes)}")
        token_provider = partial(self.credential_exchanger.exchange, request_context, scopes)
        return CopilotStudioClient(self.settings, token_provider, self.http_session)

    async def _track_session(self, conversation_id: str, current: Optional[str], fragment: ResponseFragment) -> Optional[str]:
        if fragment.session_id and fragment.session_id != current:
            await self.session_store.set(conversation_id, fragment.session_id)
            self.logger.info(f"[MCS] Got conversation ID: {fragment.session_id}")
            return fragment.session_id
        return current

    def build_outbound(self, inbound: InboundActivity, session_id: str) -> Activity:
        """Bind the inbound activity to the backend session and annotate it."""
        session = ConversationAccount(id=session_id)
        if inbound.is_message:
            outbound = copy.deepcopy(inbound.activity)
            outbound.conversation = session
            text = outbound.text or ""
            if inbound.metadata is not None:
                text = f"{info_block('notification metadata', inbound.metadata)}\n{text}"
            outbound.text = f"{info_block('sender', inbound.sender)}\n{text}"
            return outbound

        # Notifications delivered as non-message activities
        return Activity(
            type=ActivityTypes.message,
            conversation=session,
            from_property=inbound.activity.from_property,
            locale=inbound.activity.locale,
            text=info_block("notification metadata", inbound.metadata or {}),
        )

    async def relay(
        self,
        inbound: InboundActivity,
        request_context: RequestContext,
    ) -> str:
        """Run one exchange with the backend and return the aggregated reply."""
        conversation_id = inbound.conversation_id
        self.logger.info(f"[MCS] Relay started for conversation {conversation_id} ({inbound.kind.value})")

        session_id = await self.session_store.get(conversation_id)
        self.logger.info(f"[MCS] Existing conversation ID: {session_id}")

        client = self.client_factory(request_context)
        lines: List[str] = []
        stage = "start_conversation"
        try:
            if not session_id:
                self.logger.info("[MCS] Starting new conversation with Copilot Studio")
                async for fragment in client.start_conversation(emit_start_conversation_event=False):
                    if fragment.kind == FragmentKind.MESSAGE and fragment.text:
                        lines.append(fragment.text)
                    session_id = await self._track_session(conversation_id, session_id, fragment)
                if not session_id:
                    raise BackendStreamError("Backend did not return a conversation id", stage)

            stage = "send_activity"
            outbound = self.build_outbound(inbound, session_id)
            preview = (inbound.text or "")[:50]
            self.logger.info(f"[MCS] Sending message to Copilot Studio: {preview}")
            count = 0
            async for fragment in client.send_activity(outbound, session_id):
                count += 1
                if fragment.kind == FragmentKind.MESSAGE and fragment.text is not None:
                    self.logger.info(f"[MCS] Got message response: {fragment.text[:100]}")
                    lines.append(fragment.text)
                session_id = await self._track_session(conversation_id, session_id, fragment)
            self.logger.info(f"[MCS] SendActivity completed - received {count} activities")
        except Exception as e:
            failed_stage = getattr(e, "stage", stage)
            self.logger.error(f"[MCS] {failed_stage} failed for conversation {conversation_id}: {e}")
            raise

        response_text = "\n".join(lines)
        self.logger.info(f"[MCS] Relay completed - total response length: {len(response_text)}")
        return response_text

    async def handle(
        self,
        turn_context: TurnContext,
        inbound: InboundActivity,
        request_context: RequestContext,
    ) -> Optional[Activity]:
        """Relay the activity and send the agent's reply back to the channel."""
        response_text = await self.relay(inbound, request_context)
        if not response_text:
            # TODO: confirm with product whether notifications should still be acknowledged
            self.logger.warning("[RELAY] No response received from Copilot Studio")
            return None

        reply = build_reply(inbound.kind, response_text)
        self.logger.info(f"[RELAY] Sending response back to channel: {response_text[:100]}")
        try:
            await turn_context.send_activity(reply)
        except Exception as e:
            self.logger.error(f"[RELAY] send_reply failed: {e}")
            raise
        self.logger.info("[RELAY] Response sent successfully")
        return reply
