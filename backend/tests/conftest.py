"""
Pytest fixtures for storefront backend tests.

Provides the test app and database, staff users with tokens, catalog
fixtures, and an outbox that captures outbound email/webhook/SMS traffic.
"""

import pytest

from storefront import create_app
from storefront.config import TestingConfig
from storefront.extensions import db
from storefront.models import Category, Product, ProductImage
from storefront.services import channels
from storefront.services.auth_service import create_user
from storefront.services.channels import ChannelError

STAFF_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return create_user("owner", "owner@atlanticleather.com", STAFF_PASSWORD, role="admin", full_name="Shop Owner")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return create_user("clerk", "clerk@atlanticleather.com", STAFF_PASSWORD, role="manager")


def login(client, username: str, password: str = STAFF_PASSWORD) -> dict:
    """Helper to log in and return the token response body."""
    response = client.post('/api/auth/login', json={'username': username, 'password': password})
    assert response.status_code == 200, response.get_json()
    return response.get_json()


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(login(client, admin_user.username)['access_token'])


@pytest.fixture(scope='function')
def manager_headers(client, manager_user):
    return auth_headers(login(client, manager_user.username)['access_token'])


@pytest.fixture(scope='function')
def api_key_headers(app):
    return {'x-api-key': app.config['PRIVATE_API_KEY']}


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Bags", description="Leather bags", sort_order=1)
    db_session.add(category)
    db_session.commit()
    return category


def make_product(session, title: str, price_cents: int, stock: int, **extra) -> Product:
    product = Product(title=title, price_cents=price_cents, stock_quantity=stock, **extra)
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def tote(db_session, category):
    product = make_product(db_session, "Classic Tote", 10000, 10, category_id=category.id, is_featured=True)
    product.images = [ProductImage(image_url="https://cdn.example.test/tote.jpg", is_primary=True)]
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def wallet(db_session, category):
    return make_product(db_session, "Slim Wallet", 5000, 5, category_id=category.id)


def order_payload(*lines, **overrides) -> dict:
    """Build a public order body from (product, quantity, unit_price_cents) tuples."""
    body = {
        "customer_name": "Abebe Kebede",
        "customer_email": "abebe@example.com",
        "customer_phone": "+251911000000",
        "customer_address": "Bole, Addis Ababa",
        "items": [
            {"product_id": product.id, "quantity": quantity, "unit_price_cents": unit_price}
            for product, quantity, unit_price in lines
        ],
    }
    body.update(overrides)
    return body


class Outbox:
    """Captures channel traffic; recipients in `failing` raise ChannelError."""

    def __init__(self):
        self.emails = []
        self.webhooks = []
        self.sms = []
        self.failing = set()

    def _maybe_fail(self, recipient):
        if recipient in self.failing:
            raise ChannelError(f"delivery to {recipient} refused")

    def send_email(self, to, subject, html, text=None):
        self._maybe_fail(to)
        self.emails.append({"to": to, "subject": subject, "html": html, "text": text})

    def post_webhook(self, url, payload, platform, webhook_type="notification"):
        self._maybe_fail(url)
        self.webhooks.append({"url": url, "payload": payload, "platform": platform, "type": webhook_type})
        return 200

    def send_sms(self, to, body):
        self._maybe_fail(to)
        self.sms.append({"to": to, "body": body})
        return f"SM{len(self.sms):04d}"


@pytest.fixture(scope='function')
def outbox(monkeypatch):
    box = Outbox()
    monkeypatch.setattr(channels, "send_email", box.send_email)
    monkeypatch.setattr(channels, "post_webhook", box.post_webhook)
    monkeypatch.setattr(channels, "send_sms", box.send_sms)
    return box
