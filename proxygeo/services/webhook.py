from __future__ import annotations

import logging
import re
import time
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import unquote_plus

import httpx

from proxygeo.core.config import get_settings
from proxygeo.services.telemetry import increment_counter, record_upstream_call


logger = logging.getLogger(__name__)

# Acknowledgement returned whenever the payment is not forwarded.
SUCCESS_ACK: dict[str, str] = {"status": "success", "data": "Success"}


@dataclass(frozen=True)
class PaymentNotice:
    orderReference: str | None
    merchantSignature: str | None
    transactionStatus: str | None

    @property
    def approved(self) -> bool:
        return self.transactionStatus == "Approved"


def extract_field(body: str, name: str) -> str | None:
    # The payment provider posts JSON as the key of a form field; parse it as text.
    match = re.search(rf'"{re.escape(name)}":\s?"(.*?)"', body, re.IGNORECASE)
    return match.group(1) if match else None


def parse_payment_notice(raw_body: bytes | str) -> PaymentNotice:
    body = raw_body.decode("utf-8", errors="replace") if isinstance(raw_body, bytes) else raw_body
    if '"' not in body and "%22" in body:
        # Form-encoded delivery; raw JSON bodies are read as-is.
        body = unquote_plus(body)
    return PaymentNotice(
        orderReference=extract_field(body, "orderReference"),
        merchantSignature=extract_field(body, "merchantSignature"),
        transactionStatus=extract_field(body, "transactionStatus"),
    )


async def _forward(notice: PaymentNotice, client: httpx.AsyncClient | None) -> None:
    settings = get_settings()
    timeout = settings.webhook_timeout_ms / 1000.0
    start = time.monotonic()
    success = False
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as owned:
                response = await owned.post(settings.webhook_forward_url, json=asdict(notice))
        else:
            response = await client.post(settings.webhook_forward_url, json=asdict(notice), timeout=timeout)
        response.raise_for_status()
        success = True
    finally:
        record_upstream_call(
            endpoint="webhook.forward",
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=success,
        )


async def handle_payment_webhook(
    raw_body: bytes | str,
    *,
    client: httpx.AsyncClient | None = None,
    now: float | None = None,
) -> dict[str, Any]:
    """Process a payment callback and build the acknowledgement body.

    Approved payments are forwarded downstream and acknowledged with an
    ``accept`` response. Everything else, including any failure while parsing or
    forwarding, yields the plain success acknowledgement so the sender never
    sees an error.

    ``time`` in the accept response is plain Unix epoch seconds in UTC. No fixed
    +02:00 wall-clock shift is applied to it.
    """
    logger.info("payment_webhook_received bytes=%s", len(raw_body))
    try:
        notice = parse_payment_notice(raw_body)
        if not notice.approved:
            logger.info("payment_webhook_ignored status=%s", notice.transactionStatus)
            return dict(SUCCESS_ACK)
        await _forward(notice, client)
    except Exception as exc:  # noqa: BLE001 - webhook failures are non-fatal
        increment_counter("payment_webhook_failures_total")
        logger.warning("payment_webhook_forward_failed", exc_info=exc)
        return dict(SUCCESS_ACK)

    logger.info("payment_webhook_forwarded order_reference=%s", notice.orderReference)
    return {
        "orderReference": notice.orderReference,
        "status": "accept",
        "time": int(now if now is not None else time.time()),
        "signature": notice.merchantSignature,
    }
