"""
Send capability used by the reminder engine.

Every sender returns a ``SendResult``; transport problems are reported as
``success=False`` rather than raised.

SMS has no real transport. ``sms_transport`` selects between:
  log_only  the message is logged and reported as sent (sandbox / demo)
  disabled  every SMS is reported as failed, so the message log shows it
"""

from __future__ import annotations

import time
import uuid
from typing import Protocol

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from study_pulse.config import settings
from study_pulse.logging import log
from study_pulse.schemas.records import Channel
from study_pulse.schemas.results import SendResult
from study_pulse.utils.http_client import get_http_client


class Sender(Protocol):
    channel: Channel

    def send(self, to: str, body: str, subject: str | None = None, html: str | None = None) -> SendResult:
        ...


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429 or exc.response.status_code >= 500
    return False


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------

class EmailSender:
    """Posts to a Resend-style HTTP email API. Without an API key it only logs."""

    channel = Channel.EMAIL

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        from_address: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.email_api_key
        self.api_url = api_url or settings.email_api_url
        self.from_address = from_address or settings.email_from
        self._client = client

    @property
    def client(self) -> httpx.Client:
        return self._client or get_http_client()

    def send(self, to: str, body: str, subject: str | None = None, html: str | None = None) -> SendResult:
        if not self.api_key:
            log.info("email.not_configured", to=to, subject=subject)
            return SendResult(success=True, id=f"dev-{int(time.time() * 1000)}")

        payload = {
            "from": self.from_address,
            "to": to,
            "subject": subject or "",
            "html": html or body,
            "text": body,
        }
        try:
            data = self._post(payload)
        except httpx.HTTPStatusError as exc:
            log.error("email.rejected", to=to, status=exc.response.status_code, body=exc.response.text[:200])
            return SendResult(success=False, error=f"Email API returned {exc.response.status_code}")
        except httpx.HTTPError as exc:
            log.error("email.transport_failed", to=to, error=str(exc))
            return SendResult(success=False, error=str(exc) or type(exc).__name__)
        except ValueError as exc:
            log.error("email.bad_response", to=to, error=str(exc))
            return SendResult(success=False, error=f"Email API returned an unreadable response: {exc}")

        log.info("email.sent", to=to, id=data.get("id"))
        return SendResult(success=True, id=data.get("id"))

    @retry(
        stop=stop_after_attempt(settings.send_max_attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )
    def _post(self, payload: dict) -> dict:
        response = self.client.post(
            self.api_url,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        response.raise_for_status()
        return response.json() if response.content else {}


# ---------------------------------------------------------------------------
# SMS
# ---------------------------------------------------------------------------

class LogOnlySmsSender:
    channel = Channel.SMS

    def send(self, to: str, body: str, subject: str | None = None, html: str | None = None) -> SendResult:
        log.info("sms.logged", to=to, chars=len(body))
        return SendResult(success=True, id=f"sms-{uuid.uuid4().hex[:12]}")


class DisabledSmsSender:
    channel = Channel.SMS

    def send(self, to: str, body: str, subject: str | None = None, html: str | None = None) -> SendResult:
        log.warning("sms.transport_disabled", to=to)
        return SendResult(success=False, error="SMS transport is disabled")


def build_senders() -> dict[Channel, Sender]:
    """One sender per channel, as selected by settings."""
    sms: Sender = LogOnlySmsSender() if settings.sms_transport == "log_only" else DisabledSmsSender()
    return {Channel.EMAIL: EmailSender(), Channel.SMS: sms}
