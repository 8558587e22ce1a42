from datetime import timedelta
from decimal import Decimal

import jwt
import pytest

from storefront.config import AppConfig
from storefront.db.session import build_engine, create_session_factory, init_db
from storefront.errors import ExternalGatewayError
from storefront.models.product import Product
from storefront.services.cart_service import CartService
from storefront.services.order_service import OrderService
from storefront.services.payment_service import PaymentService
from storefront.utils.auth import Identity
from storefront.utils.validators import utcnow

ADDRESS = {"address": "Thamel 12", "city": "Kathmandu", "postalCode": "44600", "country": "Nepal"}
ALICE = Identity("user-alice")
BOB = Identity("user-bob")
ADMIN = Identity("user-admin", is_admin=True)


class FakeGateway:
    """Stands in for KhaltiClient; lookups answer Completed for the last initiated amount."""

    def __init__(self):
        self.initiated = []
        self.lookups = []
        self.lookup_result = None
        self.fail_initiate = False
        self.fail_lookup = False

    def initiate(self, **details):
        if self.fail_initiate:
            raise ExternalGatewayError("Khalti initialize timed out")
        self.initiated.append(details)
        n = len(self.initiated)
        pidx = f"pidx-{n}"
        self.lookup_result = {
            "pidx": pidx,
            "status": "Completed",
            "total_amount": details["amount"],
            "transaction_id": f"txn-{n}",
        }
        return {"pidx": pidx, "payment_url": f"https://pay.khalti.test/?pidx={pidx}", "expires_in": 1800}

    def lookup(self, pidx):
        if self.fail_lookup:
            raise ExternalGatewayError("Failed to verify payment with Khalti")
        self.lookups.append(pidx)
        return dict(self.lookup_result or {"status": "Pending", "total_amount": 0})


def seed_products(session_factory):
    now = utcnow()
    with session_factory() as session:
        session.add_all(
            [
                Product(id="p-mug", name="Mug", brand="Acme", price=Decimal("50.00"), quantity=10, in_stock=True),
                Product(
                    id="p-lamp",
                    name="Lamp",
                    brand="Acme",
                    price=Decimal("50.00"),
                    quantity=5,
                    in_stock=True,
                    discount_percentage=Decimal("20"),
                    discount_active=True,
                    discount_start=now - timedelta(days=1),
                    discount_end=now + timedelta(days=1),
                    discount_name="Spring sale",
                ),
                Product(id="p-pen", name="Pen", brand="Inkwell", price=Decimal("19.99"), quantity=2, in_stock=True),
            ]
        )


def get_product(session_factory, product_id):
    with session_factory() as session:
        return session.get(Product, product_id)


@pytest.fixture
def config():
    return AppConfig(
        database_url="sqlite:///:memory:",
        secret_key="test-secret",
        log_level="WARNING",
        currency="NPR",
        khalti_secret_key="test_secret_key",
        khalti_gateway_url="https://khalti.test",
        backend_url="http://api.shop.test",
        frontend_url="http://shop.test",
    )


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite:///:memory:")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def products(session_factory):
    seed_products(session_factory)
    return session_factory


@pytest.fixture
def cart_service(products):
    return CartService(products)


@pytest.fixture
def order_service(products, cart_service):
    return OrderService(products, currency="NPR", cart_service=cart_service)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def payment_service(products, gateway, config):
    return PaymentService(gateway, config, products)


@pytest.fixture
def make_token(config):
    def _make(identity):
        claims = {"sub": identity.user_id, "is_admin": identity.is_admin}
        return jwt.encode(claims, config.secret_key, algorithm="HS256")

    return _make
