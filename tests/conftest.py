import pytest
from botbuilder.core import MemoryStorage
from botbuilder.schema import Activity, ChannelAccount, ConversationAccount, Entity

from agentic_relay.config import CopilotStudioConfig
from agentic_relay.models import FragmentKind, ResponseFragment
from agentic_relay.session_store import SessionStore


class FakeBackend:
    """Records calls and replays canned fragments."""

    def __init__(self, start=None, send=None, send_error=None):
        self.start = start or []
        self.send = send or []
        self.send_error = send_error
        self.calls = []
        self.sent = []

    async def start_conversation(self, emit_start_conversation_event=False):
        self.calls.append("start_conversation")
        for fragment in self.start:
            yield fragment

    async def send_activity(self, activity, conversation_id):
        self.calls.append("send_activity")
        self.sent.append((activity, conversation_id))
        for fragment in self.send:
            yield fragment
        if self.send_error:
            raise self.send_error


class FakeTurnContext:
    def __init__(self, activity, turn_state=None):
        self.activity = activity
        self.turn_state = turn_state or {}
        self.sent = []

    async def send_activity(self, activity):
        self.sent.append(activity)


def message(text=None, session_id=None):
    return ResponseFragment(kind=FragmentKind.MESSAGE, text=text, session_id=session_id, activity_type="message")


def session_update(session_id):
    return ResponseFragment(kind=FragmentKind.SESSION_UPDATE, session_id=session_id, activity_type="event")


def make_activity(text="Hello", conversation_id="C1", activity_type="message", entities=None):
    return Activity(
        type=activity_type,
        id="act-1",
        text=text,
        channel_id="msteams",
        conversation=ConversationAccount(id=conversation_id, tenant_id="tenant-1"),
        from_property=ChannelAccount(id="user-1", name="Alice"),
        recipient=ChannelAccount(id="bot-1", name="Relay"),
        entities=entities,
    )


def notification_entity(entity_type, **properties):
    entity = Entity(type=entity_type)
    entity.additional_properties = dict(properties)
    return entity


@pytest.fixture
def copilot_settings():
    return CopilotStudioConfig(
        direct_connect_url="https://example.api.powerplatform.com/copilotstudio/prebuilt/authenticated/bots/cr_agent/conversations?api-version=2022-03-01-preview"
    )


@pytest.fixture
def session_store():
    return SessionStore(MemoryStorage())
