import pytest
from botbuilder.core import CloudAdapterBase
from botbuilder.schema import TokenResponse

from agentic_relay.bot import RelayBot
from agentic_relay.exceptions import AuthExchangeError, BackendStreamError
from agentic_relay.models import NotificationKind

from conftest import FakeTurnContext, make_activity, notification_entity


class UserTokenClientStub:
    def __init__(self, error=None):
        self.error = error

    async def get_user_token(self, user_id, connection_name, channel_id, magic_code):
        if self.error:
            raise self.error
        return TokenResponse(connection_name=connection_name, token="user-token")


class RecordingRelay:
    def __init__(self, error=None):
        self.handled = []
        self.error = error

    async def handle(self, turn_context, inbound, request_context):
        self.handled.append((inbound, request_context))
        if self.error:
            raise self.error


@pytest.mark.asyncio
async def test_message_is_relayed_with_request_context():
    relay = RecordingRelay()
    turn_context = FakeTurnContext(
        make_activity("Hello"), {CloudAdapterBase.USER_TOKEN_CLIENT_KEY: UserTokenClientStub()}
    )

    await RelayBot(relay, connection_name="relay-sso").on_message_activity(turn_context)

    inbound, request_context = relay.handled[0]
    assert inbound.kind == NotificationKind.CHAT_MESSAGE
    assert request_context.user_assertion == "user-token"
    assert request_context.tenant_id == "tenant-1"


@pytest.mark.asyncio
async def test_token_service_failure_stops_the_turn():
    relay = RecordingRelay()
    turn_context = FakeTurnContext(
        make_activity("Hello"),
        {CloudAdapterBase.USER_TOKEN_CLIENT_KEY: UserTokenClientStub(error=RuntimeError("down"))},
    )

    with pytest.raises(AuthExchangeError):
        await RelayBot(relay, connection_name="relay-sso").on_message_activity(turn_context)

    assert relay.handled == []


@pytest.mark.asyncio
async def test_event_notification_is_relayed():
    relay = RecordingRelay()
    activity = make_activity(activity_type="event", entities=[notification_entity("wpxComment", documentId="d")])

    await RelayBot(relay).on_event_activity(FakeTurnContext(activity))

    assert relay.handled[0][0].kind == NotificationKind.DOCUMENT_COMMENT


@pytest.mark.asyncio
async def test_unsupported_notification_is_ignored():
    relay = RecordingRelay()
    turn_context = FakeTurnContext(make_activity(entities=[notification_entity("agentLifecycleNotification")]))

    await RelayBot(relay).on_message_activity(turn_context)

    assert relay.handled == []
    assert turn_context.sent == []


@pytest.mark.asyncio
async def test_relay_errors_propagate():
    relay = RecordingRelay(error=BackendStreamError("dropped", "send_activity"))

    with pytest.raises(BackendStreamError):
        await RelayBot(relay).on_message_activity(FakeTurnContext(make_activity()))
