"""Push gateway adapter - sends data-only messages through FCM HTTP v1.

All knowledge of FCM's error vocabulary lives in ``classify_gateway_response``;
the rest of the pipeline only ever sees a ``DeliveryOutcome``.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import firebase_admin
import httpx

logger = logging.getLogger(__name__)

UNREGISTERED_ERROR_CODE = "UNREGISTERED"
UNREGISTERED_MESSAGE_MARKER = "registration-token-not-registered"


class DeliveryOutcome(str, Enum):
    """Gateway-independent result of one send attempt."""
    ACCEPTED = "accepted"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"


class GatewayConfigError(Exception):
    """Gateway credentials or project configuration are unavailable."""


def classify_gateway_response(status_code: int, body: Any) -> DeliveryOutcome:
    """Map an FCM HTTP v1 response to a DeliveryOutcome.

    Only an explicit UNREGISTERED error code (or the legacy
    registration-token-not-registered message) marks a token as dead. Payload,
    quota and server errors are transient so tokens survive config mistakes.
    """
    if 200 <= status_code < 300:
        return DeliveryOutcome.ACCEPTED

    if not isinstance(body, dict):
        return DeliveryOutcome.TRANSIENT_FAILURE

    error = body.get("error")
    if not isinstance(error, dict):
        return DeliveryOutcome.TRANSIENT_FAILURE

    for detail in error.get("details") or []:
        if isinstance(detail, dict) and detail.get("errorCode") == UNREGISTERED_ERROR_CODE:
            return DeliveryOutcome.PERMANENT_FAILURE

    message = error.get("message") or ""
    if isinstance(message, str) and UNREGISTERED_MESSAGE_MARKER in message:
        return DeliveryOutcome.PERMANENT_FAILURE

    return DeliveryOutcome.TRANSIENT_FAILURE


AccessTokenProvider = Callable[[], Awaitable[str]]


async def firebase_access_token() -> str:
    """Fetch an OAuth2 access token from the initialized Firebase Admin credential."""
    if not firebase_admin._apps:
        raise GatewayConfigError("Firebase Admin is not initialized")

    app = firebase_admin.get_app()
    try:
        token_info = await asyncio.to_thread(app.credential.get_access_token)
    except Exception as e:
        raise GatewayConfigError(f"Could not obtain FCM access token: {e}") from e
    return token_info.access_token


@dataclass
class FcmConfig:
    """FCM HTTP v1 configuration."""
    project_id: str = ""
    endpoint: str = "https://fcm.googleapis.com"
    timeout_seconds: float = 10.0
    max_connections: int = 50


class FcmGateway:
    """Client for the FCM HTTP v1 messages:send endpoint."""

    def __init__(self):
        self._config: Optional[FcmConfig] = None
        self._token_provider: AccessTokenProvider = firebase_access_token
        self._transport: Optional[httpx.AsyncBaseTransport] = None

    def configure(
        self,
        config: FcmConfig,
        token_provider: Optional[AccessTokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Configure the gateway.

        Args:
            config: Project and endpoint settings
            token_provider: Coroutine function returning a bearer token
                (defaults to the Firebase Admin credential)
            transport: Optional httpx transport, used to stub the gateway
        """
        self._config = config
        self._token_provider = token_provider or firebase_access_token
        self._transport = transport

        if not config.project_id:
            logger.warning("FCM gateway configured without a project id - sends will fail")
        else:
            logger.info(f"FCM gateway configured for project {config.project_id}")

    @property
    def is_configured(self) -> bool:
        return bool(self._config and self._config.project_id)

    @property
    def messages_url(self) -> str:
        endpoint = self._config.endpoint.rstrip("/")
        return f"{endpoint}/v1/projects/{self._config.project_id}/messages:send"

    @asynccontextmanager
    async def open_session(self) -> AsyncIterator[httpx.AsyncClient]:
        """Open an authenticated HTTP client for one dispatch pass.

        Raises:
            GatewayConfigError: If the project or credentials are unavailable
        """
        if not self.is_configured:
            raise GatewayConfigError("FCM project id is not configured")

        access_token = await self._token_provider()
        limits = httpx.Limits(
            max_connections=self._config.max_connections,
            max_keepalive_connections=self._config.max_connections,
        )
        async with httpx.AsyncClient(
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=self._config.timeout_seconds,
            limits=limits,
            transport=self._transport,
        ) as client:
            yield client

    async def send(self, client: httpx.AsyncClient, message: dict) -> DeliveryOutcome:
        """Send one message and classify the gateway's answer.

        Transport errors are reported as transient failures, never raised.
        """
        token = message.get("message", {}).get("token", "")
        try:
            response = await client.post(self.messages_url, json=message)
        except httpx.HTTPError as e:
            logger.warning(f"FCM transport error for {token[:16]}...: {e}")
            return DeliveryOutcome.TRANSIENT_FAILURE

        if response.is_success:
            return DeliveryOutcome.ACCEPTED

        try:
            body = response.json()
        except ValueError:
            body = None

        outcome = classify_gateway_response(response.status_code, body)
        logger.warning(
            f"FCM rejected {token[:16]}... with HTTP {response.status_code} ({outcome.value})"
        )
        return outcome


# Global instance
fcm_gateway = FcmGateway()
