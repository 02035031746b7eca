"""
Order status notifications. Fired by the HTTP layer after an update that
actually changed something; delivery is best effort.
"""
import logging
from typing import Optional

import httpx

from schemas import Order, StatusChange

logger = logging.getLogger(__name__)


class LogNotifier:
    def notify(self, order: Order, change: StatusChange):
        logger.info(
            "Notify %s: order %s is now %s (carrier=%s, tracking=%s)",
            order.wallet_address,
            order.external_id,
            change.status.value,
            change.carrier,
            change.tracking_code,
        )


class WebhookNotifier:
    """POSTs the order and its delta as JSON to a webhook."""

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout = timeout
        self.client = client

    def notify(self, order: Order, change: StatusChange):
        body = {
            "order": order.model_dump(mode="json", by_alias=True),
            "change": change.model_dump(mode="json", by_alias=True),
        }
        try:
            if self.client is not None:
                response = self.client.post(self.url, json=body, timeout=self.timeout)
            else:
                response = httpx.post(self.url, json=body, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Status notification for order %s failed: %s", order.external_id, e)


def build_notifier(webhook_url: Optional[str]):
    if webhook_url:
        return WebhookNotifier(webhook_url)
    return LogNotifier()
