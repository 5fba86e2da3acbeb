"""Outbound WhatsApp gateway adapter.

The provider takes a JSON POST of ``apiToken``, ``message``, ``phoneNumber``
and ``source`` and answers with a JSON body carrying ``success`` and, on
rejection, ``message``. Every failure mode comes back as an unsuccessful
``SendOutcome`` so callers never see transport exceptions.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from vcard_reminders.domain.models import SendOutcome

DEFAULT_SOURCE = "vcard"

logger = logging.getLogger(__name__)


class Gateway(Protocol):
    def send(self, message: str, phone_number: str, source: str = DEFAULT_SOURCE) -> SendOutcome: ...


class MessageGateway:
    def __init__(
        self,
        *,
        api_url: str,
        api_token: str,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_token = api_token
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def send(self, message: str, phone_number: str, source: str = DEFAULT_SOURCE) -> SendOutcome:
        if not self.api_url or not self.api_token:
            return SendOutcome(success=False, error_message="Gateway URL or API token is not configured")

        payload = {
            "apiToken": self.api_token,
            "message": message,
            "phoneNumber": phone_number,
            "source": source,
        }
        logger.info("Sending message to %s (source=%s)", phone_number, source)

        try:
            response = self._client.post(self.api_url, json=payload)
            response.raise_for_status()
            body: Any = response.json()
        except httpx.HTTPStatusError as exc:
            details = exc.response.text[:300]
            return SendOutcome(
                success=False,
                error_message=f"Gateway HTTP {exc.response.status_code}: {details}",
            )
        except httpx.HTTPError as exc:
            return SendOutcome(success=False, error_message=f"Gateway unreachable: {exc}")
        except ValueError as exc:
            return SendOutcome(success=False, error_message=f"Gateway returned non-JSON body: {exc}")

        if not isinstance(body, dict):
            return SendOutcome(success=False, data=body, error_message="Gateway returned unexpected payload")

        if body.get("success"):
            logger.info("Message sent to %s: %s", phone_number, body)
            return SendOutcome(success=True, data=body.get("data", body))

        return SendOutcome(
            success=False,
            data=body,
            error_message=str(body.get("message") or "Gateway reported failure"),
        )
