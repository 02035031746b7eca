import json
import logging
from datetime import datetime, timezone

import httpx

from notifications import LogNotifier, WebhookNotifier, build_notifier
from schemas import LineItem, Order, OrderStatus, StatusChange

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def make_order():
    return Order(
        id=3, order_id="th1a2b3c4d", wallet_address="0xabc", email="a@b.c", country="TH",
        first_name="A", last_name="B", address="1 Road", city="Bangkok", postcode="10110", phone="1",
        status=OrderStatus.PAID, line_items=[LineItem(product_id=1, quantity=1, price_at_purchase=5)],
        created_at=NOW, updated_at=NOW,
    )


CHANGE = StatusChange(previous_status=OrderStatus.PENDING, status=OrderStatus.PAID)


def test_webhook_posts_order_and_change():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(204)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    WebhookNotifier("https://hooks.test/orders", client=client).notify(make_order(), CHANGE)
    assert seen[0]["order"]["externalId"] == "th1a2b3c4d"
    assert seen[0]["change"] == {
        "previousStatus": "pending", "status": "paid", "previousCarrier": None, "carrier": None,
        "previousTrackingCode": None, "trackingCode": None, "changed": True,
    }


def test_webhook_failure_is_logged_not_raised(caplog):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    with caplog.at_level(logging.WARNING, logger="notifications"):
        WebhookNotifier("https://hooks.test/orders", client=client).notify(make_order(), CHANGE)
    assert "failed" in caplog.text


def test_build_notifier():
    assert isinstance(build_notifier(None), LogNotifier)
    assert isinstance(build_notifier("https://hooks.test"), WebhookNotifier)
