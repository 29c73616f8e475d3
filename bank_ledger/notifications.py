"""
Webhook notifier — fire-and-forget delivery of ledger events.

After a ledger mutation commits, the service that performed it publishes a
structured event here. Delivery happens on a detached asyncio task, so:

  - The caller never waits on the webhook endpoint
  - A slow, failing or unreachable endpoint never stalls or rolls back
    the mutation (it has already committed)
  - Failures are logged and discarded; there is no retry and no ordering
    guarantee between events

When no webhook URL is configured, events are dropped silently.

Payload envelope (POSTed as JSON):
    {"event": "transfer_completed", "timestamp": "...", "data": {...}}
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "Bank-Ledger-Webhook/1.0"

# Event names
TRANSFER_COMPLETED = "transfer_completed"
PAYMENT_REQUEST_CREATED = "payment_request_created"
PAYMENT_REQUEST_APPROVED = "payment_request_approved"
PAYMENT_REQUEST_REJECTED = "payment_request_rejected"
ADMIN_TRANSACTION = "admin_transaction"
CARD_REFRESHED = "card_refreshed"
USER_AUTH = "user_auth"


class WebhookNotifier:
    """
    Publishes events to a single webhook URL.

    Args:
        url: Endpoint to POST events to. None or empty disables delivery.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        url: str | None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url or None
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        # Strong references so pending deliveries aren't garbage collected
        self._pending: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.url is not None

    def publish(self, event: str, data: dict[str, Any]) -> None:
        """
        Schedule delivery of one event and return immediately.

        Must be called after the producing unit has committed.
        """
        if not self.enabled:
            return

        payload = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": data,
        }
        task = asyncio.get_running_loop().create_task(self._deliver(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, payload: dict[str, Any]) -> None:
        try:
            response = await self._get_client().post(
                self.url,
                json=payload,
                headers={"User-Agent": USER_AGENT},
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "Webhook delivery failed for %s: %s", payload["event"], exc
            )
            return

        if not response.is_success:
            logger.warning(
                "Webhook for %s returned non-success status %d",
                payload["event"],
                response.status_code,
            )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def drain(self) -> None:
        """Wait for every in-flight delivery to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        """Flush pending deliveries and close the HTTP client (app shutdown)."""
        await self.drain()
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# ---------------------------------------------------------------------------
# Payload builders: the public fields of each entity
# ---------------------------------------------------------------------------

def transaction_payload(txn) -> dict[str, Any]:
    return {
        "transaction_id": txn.id,
        "from_account_id": str(txn.from_account_id),
        "from_username": txn.from_username,
        "to_account_id": str(txn.to_account_id),
        "to_username": txn.to_username,
        "amount_cents": txn.amount_cents,
        "description": txn.description,
        "transaction_type": txn.type.value,
        "status": txn.status.value,
    }


def payment_request_payload(payment_request) -> dict[str, Any]:
    return {
        "request_id": payment_request.id,
        "from_account_id": str(payment_request.from_account_id),
        "from_username": payment_request.from_username,
        "to_account_id": str(payment_request.to_account_id),
        "to_username": payment_request.to_username,
        "amount_cents": payment_request.amount_cents,
        "reason": payment_request.reason,
        "message": payment_request.message,
        "status": payment_request.status.value,
    }
