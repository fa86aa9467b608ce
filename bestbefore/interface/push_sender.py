"""Expo push notification sender with retry logic."""

import asyncio
import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from bestbefore.core.config import constants, settings


logger = logging.getLogger(__name__)


# HTTP status code constants for error handling
HTTP_CLIENT_ERROR_START = 400
HTTP_CLIENT_ERROR_END = 500


class SendPushResult(BaseModel):
    """Result of sending a push notification."""

    success: bool = Field(..., description="Whether the push service accepted the message")
    ticket_id: str | None = Field(None, description="Expo push ticket ID if accepted")
    error: str | None = Field(None, description="Error message if failed")


def _extract_ticket(data: dict[str, Any]) -> tuple[str | None, str | None]:
    """Return (ticket_id, error) from an Expo push response.

    Expo answers {"data": {"status": "ok", "id": ...}} or
    {"data": {"status": "error", "message": ...}} for a single message.
    """
    ticket = data.get("data")
    if isinstance(ticket, list):
        ticket = ticket[0] if ticket else {}
    if not isinstance(ticket, dict):
        return None, "Malformed push response"
    if ticket.get("status") == "error":
        return None, ticket.get("message") or "Push rejected"
    return ticket.get("id"), None


async def send_push(
    *,
    to: str,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
    max_retries: int = 3,
    retry_delay: float = 1.0,
) -> SendPushResult:
    """Send one push notification via the Expo push API with retry logic."""
    payload = {"to": to, "title": title, "body": body, "data": data or {}, "sound": "default"}
    headers = {"Content-Type": "application/json", "Accept": "application/json"}

    for attempt in range(max_retries):
        try:
            async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS) as client:
                response = await client.post(settings.expo_push_url, json=payload, headers=headers)

                if response.is_success:
                    ticket_id, error = _extract_ticket(response.json())
                    if error:
                        return SendPushResult(success=False, error=error)
                    return SendPushResult(success=True, ticket_id=ticket_id)

                if HTTP_CLIENT_ERROR_START <= response.status_code < HTTP_CLIENT_ERROR_END:
                    return SendPushResult(success=False, error=f"Client error: {response.text}")

                raise httpx.HTTPStatusError(
                    f"Server error: {response.status_code}", request=response.request, response=response
                )
        except httpx.HTTPError as e:
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_delay * (2**attempt))
            else:
                return SendPushResult(success=False, error=f"Failed after retries: {e!s}")

    return SendPushResult(success=False, error="Max retries exceeded")
