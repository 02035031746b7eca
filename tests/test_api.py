import pytest
from fastapi.testclient import TestClient

import settings
from main import app, get_notifier, get_storage
from tests.conftest import RecordingNotifier

CHECKOUT = {
    "walletAddress": "0xabc",
    "email": "buyer@example.com",
    "country": "TH",
    "firstName": "Somchai",
    "lastName": "Jaidee",
    "address": "1 Sukhumvit Rd",
    "city": "Bangkok",
    "postcode": "10110",
    "phone": "+66800000000",
    "language": "th",
    "products": [{"productId": 1, "quantity": 2}],
}


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(storage, notifier):
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        assert c.post("/seed").json()["data"] == {"status": "seeded"}
        yield c
    app.dependency_overrides.clear()


class TestCatalogRoutes:
    def test_resolved_product(self, client):
        body = client.get("/api/products/1", params={"lang": "th", "country": "TH"}).json()
        assert body["success"] is True
        assert body["data"]["name"] == "เสื้อ"
        assert body["data"]["price"] == 8.5
        assert body["data"]["hasCountryPrice"] is True

    def test_fallback_language_and_base_price(self, client):
        data = client.get("/api/products/1", params={"lang": "ms", "country": "MY"}).json()["data"]
        assert data["name"] == "Shirt"
        assert data["price"] == 10

    def test_collection_products(self, client):
        data = client.get("/api/collections/core/products", params={"lang": "th"}).json()["data"]
        assert [p["slug"] for p in data] == ["classic-shirt"]

    def test_product_page(self, client):
        data = client.get("/api/products", params={"size": 5}).json()["data"]
        assert data["totalElements"] == 1
        assert data["content"][0]["name"] == "Shirt"

    def test_zero_price_override(self, client):
        assert client.put("/api/products/1/prices/th", json={"price": 0}).status_code == 200
        assert client.get("/api/products/1", params={"country": "TH"}).json()["data"]["price"] == 0

    def test_base_language_removal_refused(self, client):
        response = client.delete("/api/products/1/languages/en")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "LANGUAGE_REMOVAL_REFUSED"

    def test_raw_entity(self, client):
        data = client.get("/api/cms/products/1").json()["data"]
        assert data["countryPrices"] == {"TH": 8.5}
        assert data["availableLanguages"] == ["en", "th"]

    def test_unknown_product(self, client):
        response = client.get("/api/products/99")
        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": {"code": "NOT_FOUND", "message": "Product 99 not found", "details": {"kind": "product", "key": 99}},
        }


class TestCheckoutRoutes:
    def test_create_and_fetch(self, client):
        response = client.post("/api/checkout", json=CHECKOUT)
        assert response.status_code == 201
        order = response.json()["data"]
        assert order["status"] == "pending"
        assert order["lineItems"] == [{"productId": 1, "quantity": 2, "priceAtPurchase": 8.5, "name": "เสื้อ"}]
        assert order["subtotal"] == 17

        fetched = client.get(f"/api/checkout/{order['externalId']}").json()["data"]
        assert fetched["id"] == order["id"]
        items = client.get(f"/api/checkout/{order['id']}/products").json()["data"]
        assert items[0]["priceAtPurchase"] == 8.5

    def test_country_name_priced_by_code(self, client):
        order = client.post("/api/checkout", json=dict(CHECKOUT, country="Thailand")).json()["data"]
        assert order["country"] == "Thailand"
        assert order["countryCode"] == "TH"
        assert order["lineItems"][0]["priceAtPurchase"] == 8.5

    def test_numeric_order_id_rejected(self, client):
        first = client.post("/api/checkout", json=CHECKOUT).json()["data"]
        assert first["orderId"] == str(first["id"])
        response = client.post("/api/checkout", json=dict(CHECKOUT, orderId=first["orderId"]))
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_ORDER_ID"
        assert client.get(f"/api/checkout/{first['externalId']}").json()["data"]["id"] == first["id"]

    def test_empty_cart(self, client):
        response = client.post("/api/checkout", json=dict(CHECKOUT, products=[]))
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "EMPTY_CART"

    def test_missing_field(self, client):
        response = client.post("/api/checkout", json=dict(CHECKOUT, city=""))
        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"fields": ["city"]}

    def test_duplicate_submission(self, client):
        assert client.post("/api/checkout", json=dict(CHECKOUT, orderId="th1a2b3c4d")).status_code == 201
        response = client.post("/api/checkout", json=dict(CHECKOUT, orderId="th1a2b3c4d"))
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_ORDER"

    def test_status_update_notifies_once(self, client, notifier):
        client.post("/api/checkout", json=dict(CHECKOUT, orderId="X"))
        params = {"status": "paid", "carrier": "", "trackingCode": ""}
        first = client.patch("/api/checkout/order/X/status", params=params).json()["data"]
        second = client.patch("/api/checkout/order/X/status", params=params).json()["data"]
        assert first["change"]["changed"] is True
        assert second["change"]["changed"] is False
        assert first["order"] == second["order"]
        assert len(notifier.calls) == 1

    def test_absent_shipping_params_are_untouched(self, client):
        client.post("/api/checkout", json=dict(CHECKOUT, orderId="X"))
        client.patch("/api/checkout/order/X/status",
                     params={"status": "out for delivery", "carrier": "Kerry", "trackingCode": "KE1"})
        order = client.patch("/api/checkout/order/X/status", params={"status": "delivered"}).json()["data"]["order"]
        assert order["status"] == "delivered"
        assert order["carrier"] == "Kerry"
        assert order["trackingCode"] == "KE1"

    def test_invalid_status(self, client):
        client.post("/api/checkout", json=dict(CHECKOUT, orderId="X"))
        response = client.patch("/api/checkout/order/X/status", params={"status": "bogus"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_STATUS"
        assert client.get("/api/checkout/X").json()["data"]["status"] == "pending"

    def test_unknown_order(self, client):
        response = client.patch("/api/checkout/order/missing/status", params={"status": "paid"})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ORDER_NOT_FOUND"

    def test_wallet_history(self, client):
        for _ in range(2):
            client.post("/api/checkout", json=CHECKOUT)
        client.post("/api/checkout", json=dict(CHECKOUT, walletAddress="0xother"))
        data = client.get("/api/checkout/wallet/0xabc", params={"size": 1}).json()["data"]
        assert data["totalElements"] == 2
        assert data["totalPages"] == 2
        assert len(data["content"]) == 1

    def test_configured_default_page_size(self, client, monkeypatch):
        monkeypatch.setattr(settings, "DEFAULT_PAGE_SIZE", 1)
        for _ in range(2):
            client.post("/api/checkout", json=CHECKOUT)
        data = client.get("/api/checkout/wallet/0xabc").json()["data"]
        assert data["size"] == 1
        assert data["totalPages"] == 2
        assert client.get("/api/products").json()["data"]["size"] == 1

    def test_admin_list(self, client):
        client.post("/api/checkout", json=CHECKOUT)
        data = client.get("/api/checkout", params={"status": "pending"}).json()["data"]
        assert data["totalElements"] == 1

    def test_request_validation_envelope(self, client):
        response = client.post("/api/checkout", json=dict(CHECKOUT, products=[{"productId": 1, "quantity": 0}]))
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestCartRoutes:
    def test_add_view_and_checkout(self, client):
        response = client.post("/api/cart/0xabc", params={"lang": "th", "country": "TH"},
                               json={"productId": 1, "quantity": 2})
        assert response.status_code == 201
        cart = response.json()["data"]
        assert cart["totalItems"] == 2
        assert cart["totalAmount"] == 17
        assert cart["items"][0]["productName"] == "เสื้อ"
        assert cart["items"][0]["lineTotal"] == 17

        body = {k: v for k, v in CHECKOUT.items() if k != "products"}
        response = client.post("/api/cart/0xabc/checkout", json=body)
        assert response.status_code == 201
        order = response.json()["data"]
        assert order["lineItems"] == [{"productId": 1, "quantity": 2, "priceAtPurchase": 8.5, "name": "เสื้อ"}]
        assert client.get("/api/cart/0xabc").json()["data"]["items"] == []

    def test_update_and_remove_item(self, client):
        item_id = client.post("/api/cart/0xabc", json={"productId": 1}).json()["data"]["items"][0]["id"]
        cart = client.put(f"/api/cart/0xabc/items/{item_id}", json={"quantity": 3}).json()["data"]
        assert cart["items"][0]["quantity"] == 3
        cart = client.delete(f"/api/cart/0xabc/items/{item_id}").json()["data"]
        assert cart["items"] == []

    def test_other_wallets_item_not_found(self, client):
        item_id = client.post("/api/cart/0xabc", json={"productId": 1}).json()["data"]["items"][0]["id"]
        response = client.delete(f"/api/cart/0xother/items/{item_id}")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CART_ITEM_NOT_FOUND"

    def test_checkout_empty_cart(self, client):
        body = {k: v for k, v in CHECKOUT.items() if k != "products"}
        response = client.post("/api/cart/0xabc/checkout", json=body)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "EMPTY_CART"
