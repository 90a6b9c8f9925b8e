"""
On-behalf-of credential exchange for calls to the Copilot Studio agent.
"""

import logging
from typing import List, Optional

from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.identity.aio import OnBehalfOfCredential
from botbuilder.core import CloudAdapterBase, TurnContext
from pydantic import BaseModel

from .config import BotConfig
from .exceptions import AuthExchangeError


class RequestContext(BaseModel):
    """Identity context of one inbound request."""

    user_assertion: Optional[str] = None
    tenant_id: Optional[str] = None


async def request_context_from_turn(turn_context: TurnContext, connection_name: str) -> RequestContext:
    """
    Build the request context for the current turn.

    The assertion is the signed-in user's token from the Bot Framework token
    service for the given OAuth connection. That connection must issue tokens
    for this application (audience = app id) so they can be exchanged
    on behalf of the user.
    """
    activity = turn_context.activity
    conversation = activity.conversation
    tenant_id = getattr(conversation, "tenant_id", None) if conversation else None

    user_token_client = turn_context.turn_state.get(CloudAdapterBase.USER_TOKEN_CLIENT_KEY)
    if not connection_name or user_token_client is None or not activity.from_property:
        return RequestContext(tenant_id=tenant_id)

    try:
        token_response = await user_token_client.get_user_token(
            activity.from_property.id, connection_name, activity.channel_id, None
        )
    except Exception as e:
        raise AuthExchangeError(
            "Failed to read the user token from the token service",
            {"connection_name": connection_name, "error": str(e)},
        ) from e

    return RequestContext(
        user_assertion=token_response.token if token_response else None,
        tenant_id=tenant_id,
    )


class CredentialExchanger:
    """Exchanges the inbound caller's token for a backend-scoped token."""

    def __init__(self, config: BotConfig):
        self.client_id = config.app_id
        self.client_secret = config.app_password
        self.tenant_id = config.tenant_id
        self.logger = logging.getLogger(__name__)

    async def exchange(self, request_context: RequestContext, scopes: List[str]) -> str:
        """
        Exchange the request's assertion for a bearer token.

        A new credential is used for every call; nothing is cached. No retry
        is attempted here.

        Raises:
            AuthExchangeError: the assertion is missing or the identity
                provider rejected the exchange.
        """
        if not request_context.user_assertion:
            raise AuthExchangeError("No inbound credential available for token exchange")

        tenant_id = self.tenant_id or request_context.tenant_id
        self.logger.info(f"[AUTH] Exchanging token for scopes: {', '.join(scopes)}")
        try:
            async with OnBehalfOfCredential(
                tenant_id=tenant_id,
                client_id=self.client_id,
                client_secret=self.client_secret,
                user_assertion=request_context.user_assertion,
            ) as credential:
                access_token = await credential.get_token(*scopes)
        except ClientAuthenticationError as e:
            self.logger.error(f"[AUTH] Token exchange rejected: {e}")
            raise AuthExchangeError(
                "Identity provider rejected the token exchange",
                {"scopes": scopes, "tenant_id": tenant_id, "error": str(e)},
            ) from e
        except AzureError as e:
            self.logger.error(f"[AUTH] Token exchange failed: {e}")
            raise AuthExchangeError(
                "Identity provider unavailable",
                {"scopes": scopes, "tenant_id": tenant_id, "error": str(e)},
            ) from e

        if not access_token.token:
            raise AuthExchangeError("Token exchange returned an empty token", {"scopes": scopes})
        self.logger.info(f"[AUTH] Token exchange successful - token length: {len(access_token.token)}")
        return access_token.token
