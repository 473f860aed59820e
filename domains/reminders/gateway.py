"""Push delivery gateways.

A gateway takes a batch of device tokens and one payload and reports a
per-token outcome. Permanent failures (token unregistered, malformed, sent
with the wrong credentials) are flagged so the caller can prune the token;
everything else is treated as transient.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from config import FCM_PROJECT_ID, FCM_ACCESS_TOKEN
from logger import logger
from utils.log_sanitizer import mask_token
from . import config
from .exceptions import GatewayError
from .types import BatchResult, NotificationPayload, TokenResult


def is_permanent_error(error_code: Optional[str]) -> bool:
    """True if a token failing with this code will never succeed."""
    return bool(error_code) and error_code in config.PERMANENT_TOKEN_ERRORS


class DeliveryGateway(ABC):
    """Sends one payload to many device tokens."""

    @abstractmethod
    async def send_batch(self, tokens: list[str], payload: NotificationPayload) -> BatchResult:
        """Deliver to every token; one TokenResult per token, in order.

        Raises:
            GatewayError: If the batch could not be attempted at all
        """


def _fcm_message(token: str, payload: NotificationPayload) -> dict:
    """FCM HTTP v1 message body for one token."""
    link = payload.data.get("url")
    message = {
        "token": token,
        "notification": {"title": payload.title, "body": payload.body},
        "data": {k: str(v) for k, v in payload.data.items()},
        "android": {
            "priority": "high",
            "notification": {"sound": "default"},
        },
        "apns": {
            "payload": {"aps": {"sound": "default", "content-available": 1}},
        },
        "webpush": {"headers": {"TTL": "3600"}},
    }
    if link:
        message["webpush"]["fcm_options"] = {"link": link}
    return {"message": message}


def _fcm_error_code(response: httpx.Response) -> str:
    """Pull the FCM error code out of an error response."""
    try:
        error = response.json().get("error", {})
    except ValueError:
        return f"HTTP_{response.status_code}"

    for detail in error.get("details") or []:
        if detail.get("errorCode"):
            return detail["errorCode"]
    return error.get("status") or f"HTTP_{response.status_code}"


class FcmGateway(DeliveryGateway):
    """Firebase Cloud Messaging over the HTTP v1 API."""

    def __init__(self, project_id: Optional[str] = None, access_token: Optional[str] = None):
        self.project_id = project_id or FCM_PROJECT_ID
        self.access_token = access_token or FCM_ACCESS_TOKEN

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _send_one(self, client: httpx.AsyncClient, token: str, payload: NotificationPayload) -> TokenResult:
        url = config.FCM_SEND_URL.format(project_id=self.project_id)
        try:
            response = await client.post(
                url,
                headers=self._headers(),
                json=_fcm_message(token, payload),
                timeout=config.HTTP_TIMEOUT,
            )
        except httpx.HTTPError as e:
            logger.warning(f"FCM send to {mask_token(token)} failed: {e}")
            return TokenResult(token=token, success=False, error_code="UNAVAILABLE")

        if response.status_code == 200:
            return TokenResult(token=token, success=True)

        code = _fcm_error_code(response)
        return TokenResult(token=token, success=False, error_code=code, permanent=is_permanent_error(code))

    async def send_batch(self, tokens: list[str], payload: NotificationPayload) -> BatchResult:
        if not self.project_id or not self.access_token:
            raise GatewayError("FCM not configured")

        result = BatchResult()
        if not tokens:
            return result

        async with httpx.AsyncClient() as client:
            for i in range(0, len(tokens), config.FCM_BATCH_SIZE):
                chunk = tokens[i:i + config.FCM_BATCH_SIZE]
                outcomes = await asyncio.gather(*(self._send_one(client, t, payload) for t in chunk))
                result.results.extend(outcomes)

        logger.info(
            f"FCM batch result. Success: {result.success_count}, Failure: {result.failure_count}"
        )
        return result


class MemoryGateway(DeliveryGateway):
    """Records deliveries; outcomes are scripted per token.

    Usage:
        gateway = MemoryGateway(errors={"tok-b": "UNREGISTERED"})
    """

    def __init__(self, errors: Optional[dict[str, str]] = None, raise_error: Optional[Exception] = None):
        self.errors = dict(errors or {})
        self.raise_error = raise_error
        self.sent: list[tuple[list[str], NotificationPayload]] = []

    async def send_batch(self, tokens: list[str], payload: NotificationPayload) -> BatchResult:
        if self.raise_error is not None:
            raise self.raise_error
        self.sent.append((list(tokens), payload))

        result = BatchResult()
        for token in tokens:
            code = self.errors.get(token)
            if code is None:
                result.results.append(TokenResult(token=token, success=True))
            else:
                result.results.append(
                    TokenResult(token=token, success=False, error_code=code, permanent=is_permanent_error(code))
                )
        return result


def create_gateway() -> DeliveryGateway:
    """FCM when configured, otherwise a gateway that only logs."""
    if FCM_PROJECT_ID and FCM_ACCESS_TOKEN:
        return FcmGateway()
    logger.warning("FCM not configured, deliveries are recorded in memory only")
    return MemoryGateway()
