"""HTTP surface: auth, JSON errors, checkout redirects and admin guard."""
from urllib.parse import parse_qs, urlparse

import pytest

from app import create_app
from conftest import ADDRESS, ADMIN, ALICE, BOB, FakeGateway, get_product, seed_products


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(config, gateway):
    app = create_app(config, gateway=gateway)
    app.config["TESTING"] = True
    seed_products(app.extensions["storefront_session"])
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth(make_token):
    def _auth(identity):
        return {"Authorization": f"Bearer {make_token(identity)}"}

    return _auth


def place_order(client, auth, identity=ALICE, qty=3):
    response = client.post(
        "/api/orders",
        json={
            "orderItems": [{"product": "p-mug", "price": 50, "qty": qty}],
            "shippingAddress": ADDRESS,
            "paymentMethod": "khalti",
        },
        headers=auth(identity),
    )
    assert response.status_code == 201
    return response.get_json()


def test_health(client):
    assert client.get("/health").get_json() == {"status": "ok"}


def test_products_are_public(client):
    response = client.get("/api/products")
    assert response.status_code == 200
    lamp = next(p for p in response.get_json() if p["id"] == "p-lamp")
    assert lamp["discountedPrice"] == "40.00"
    assert client.get("/api/products/p-ghost").status_code == 404


def test_cart_requires_token(client):
    response = client.get("/api/cart")
    assert response.status_code == 401
    assert response.get_json()["error"] == "Not authorized, no token"
    assert client.get("/api/cart", headers={"Authorization": "Bearer junk"}).status_code == 401


def test_cart_round_trip(client, auth):
    response = client.post("/api/cart", json={"product": "p-lamp", "price": 40, "qty": 2}, headers=auth(ALICE))
    assert response.status_code == 200
    cart = response.get_json()
    assert cart["itemsPrice"] == "80.00"
    assert cart["totalSavings"] == "20.00"

    cleared = client.delete("/api/cart/p-lamp", headers=auth(ALICE)).get_json()
    assert cleared["cartItems"] == []


def test_price_mismatch_is_a_400_naming_the_product(client, auth):
    response = client.post("/api/cart", json={"product": "p-mug", "price": 45, "qty": 1}, headers=auth(ALICE))
    assert response.status_code == 400
    assert response.get_json()["field"] == "p-mug"


def test_cookie_token_is_accepted(client, make_token):
    client.set_cookie("jwt", make_token(ALICE))
    assert client.get("/api/orders/mine").status_code == 200


def test_other_users_order_is_forbidden(client, auth):
    order = place_order(client, auth)
    assert client.get(f"/api/orders/{order['id']}", headers=auth(BOB)).status_code == 403
    assert client.get(f"/api/orders/{order['id']}", headers=auth(ADMIN)).status_code == 200


def test_cancel_paid_order_is_a_conflict(client, auth):
    order = place_order(client, auth)
    client.put(f"/api/orders/{order['id']}/payment-proof", json={"imageUrl": "/r.png"}, headers=auth(ALICE))
    assert client.put(f"/api/admin/orders/{order['id']}/pay", json={}, headers=auth(ADMIN)).status_code == 200
    response = client.put(f"/api/orders/{order['id']}/cancel", json={"reason": "late"}, headers=auth(ALICE))
    assert response.status_code == 409


def test_checkout_through_verify_redirect(app, client, auth, gateway):
    order = place_order(client, auth)
    response = client.post("/api/payment/initiate", json={"orderId": order["id"]}, headers=auth(ALICE))
    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    payment = body["payment"]
    assert payment["amount"] == 17250

    response = client.get(
        "/api/payment/verify",
        query_string={
            "pidx": payment["pidx"],
            "amount": payment["amount"],
            "purchase_order_id": order["id"],
            "transaction_id": "txn-1",
            "status": "Completed",
        },
    )
    assert response.status_code == 302
    location = response.headers["Location"]
    assert location.startswith(f"http://shop.test/order/{order['id']}")
    assert parse_qs(urlparse(location).query)["payment"] == ["success"]
    assert get_product(app.extensions["storefront_session"], "p-mug").quantity == 7

    paid = client.get(f"/api/orders/{order['id']}", headers=auth(ALICE)).get_json()
    assert paid["isPaid"] is True


def test_verify_failure_still_redirects(client):
    response = client.get("/api/payment/verify", query_string={"purchase_order_id": "missing", "pidx": "x"})
    assert response.status_code == 302
    query = parse_qs(urlparse(response.headers["Location"]).query)
    assert query["payment"] == ["error"]
    assert query["message"] == ["Order not found"]


def test_initiate_gateway_failure_is_502(client, auth, gateway):
    order = place_order(client, auth)
    gateway.fail_initiate = True
    response = client.post("/api/payment/initiate", json={"orderId": order["id"]}, headers=auth(ALICE))
    assert response.status_code == 502


def test_initiate_requires_order_id(client, auth):
    response = client.post("/api/payment/initiate", json={}, headers=auth(ALICE))
    assert response.status_code == 400
    assert response.get_json()["field"] == "orderId"


def test_admin_routes_are_guarded(client, auth):
    assert client.get("/api/admin/orders").status_code == 401
    assert client.get("/api/admin/orders", headers=auth(ALICE)).status_code == 403
    assert client.get("/api/admin/orders", headers=auth(ADMIN)).status_code == 200


def test_admin_discount_changes_catalog_price(client, auth):
    response = client.put(
        "/api/admin/products/p-mug/discount",
        json={"percentage": 10, "startDate": "2020-01-01T00:00:00Z", "endDate": "2999-01-01T00:00:00Z"},
        headers=auth(ADMIN),
    )
    assert response.status_code == 200
    assert response.get_json()["discountedPrice"] == "45.00"

    client.delete("/api/admin/products/p-mug/discount", headers=auth(ADMIN))
    assert client.get("/api/products/p-mug").get_json()["discountedPrice"] == "50.00"


def test_admin_sales_report(client, auth):
    order = place_order(client, auth, qty=1)
    client.put(f"/api/orders/{order['id']}/payment-proof", json={"imageUrl": "/r.png"}, headers=auth(ALICE))
    client.put(f"/api/admin/orders/{order['id']}/pay", json={"id": "bank-1"}, headers=auth(ADMIN))
    assert client.get("/api/admin/orders/total", headers=auth(ADMIN)).get_json() == {"totalOrders": 1}
    assert client.get("/api/admin/orders/total-sales", headers=auth(ADMIN)).get_json() == {"totalSales": "67.50"}


def test_otp_endpoints(app, client):
    sent = []
    app.extensions["storefront_components"]["otp"]._notify = lambda email, purpose, code: sent.append(code)
    assert client.post("/api/users/otp", json={"email": "a@example.com"}).status_code == 200
    bad = client.post("/api/users/otp/verify", json={"email": "a@example.com", "otp": "abc"})
    assert bad.status_code == 400
    ok = client.post("/api/users/otp/verify", json={"email": "a@example.com", "otp": sent[0]})
    assert ok.status_code == 200


@pytest.mark.parametrize(
    "body, field",
    [
        ({"orderItems": ["p-mug"], "shippingAddress": ADDRESS, "paymentMethod": "khalti"}, "orderItems"),
        ({"orderItems": "p-mug", "shippingAddress": ADDRESS, "paymentMethod": "khalti"}, "orderItems"),
        (
            {"orderItems": [{"product": "p-mug", "price": 50, "qty": 1}], "shippingAddress": "Thamel", "paymentMethod": "khalti"},
            "shippingAddress",
        ),
        (["p-mug"], "body"),
    ],
)
def test_malformed_order_bodies_are_400(client, auth, body, field):
    response = client.post("/api/orders", json=body, headers=auth(ALICE))
    assert response.status_code == 400
    assert response.get_json()["field"] == field


def test_malformed_cart_address_is_400(client, auth):
    response = client.put("/api/cart/shipping", json=["Thamel"], headers=auth(ALICE))
    assert response.status_code == 400


def test_admin_product_quantity_must_be_numeric(client, auth):
    response = client.post(
        "/api/admin/products", json={"name": "Bowl", "price": 12, "quantity": "ten"}, headers=auth(ADMIN)
    )
    assert response.status_code == 400
    assert response.get_json()["field"] == "quantity"


def test_initiate_rejects_non_object_body(client, auth):
    response = client.post("/api/payment/initiate", json=["order-1"], headers=auth(ALICE))
    assert response.status_code == 400


def test_admin_update_and_remove_product(client, auth):
    response = client.put("/api/admin/products/p-mug", json={"price": 60, "quantity": 3}, headers=auth(ADMIN))
    assert response.status_code == 200
    assert response.get_json()["price"] == "60.00"
    assert client.put("/api/admin/products/p-mug", json={"quantity": "ten"}, headers=auth(ADMIN)).status_code == 400
    assert client.put("/api/admin/products/p-mug", json={"price": 1}, headers=auth(ALICE)).status_code == 403

    assert client.delete("/api/admin/products/p-mug", headers=auth(ADMIN)).status_code == 200
    assert client.get("/api/products/p-mug").status_code == 404
    assert client.delete("/api/admin/products/p-mug", headers=auth(ADMIN)).status_code == 404


def test_product_reviews(client, auth):
    body = {"rating": 4, "comment": "Solid lamp"}
    assert client.post("/api/products/p-lamp/reviews", json=body).status_code == 401
    response = client.post("/api/products/p-lamp/reviews", json=body, headers=auth(ALICE))
    assert response.status_code == 201
    assert client.post("/api/products/p-lamp/reviews", json=body, headers=auth(ALICE)).status_code == 400

    reviews = client.get("/api/products/p-lamp/reviews").get_json()
    assert [r["rating"] for r in reviews] == [4]
    lamp = client.get("/api/products/p-lamp").get_json()
    assert (lamp["rating"], lamp["numReviews"]) == (4.0, 1)
    top = client.get("/api/products/top").get_json()
    assert top[0]["id"] == "p-lamp"
    assert len(client.get("/api/products/new").get_json()) == 3
