import itertools

import pytest
from fastapi.testclient import TestClient

from storefront.config import Settings
from storefront.errors import ExternalServiceError
from storefront.main import create_app
from storefront.models import Category, Coupon, Product, Role, User
from storefront.security import create_token, hash_password

PASSWORD = "Secret@123"

_counter = itertools.count(1)


# =====================================================
# FAKE COLLABORATORS
# =====================================================

class FakeStorage:
    """``fail_uploads_after``: uploads that succeed before the next one raises."""

    def __init__(self):
        self.uploaded = []
        self.deleted = []
        self.fail_uploads_after = None
        self.fail_deletes = set()

    def upload_image(self, file, folder, public_id=None):
        if self.fail_uploads_after is not None and len(self.uploaded) >= self.fail_uploads_after:
            raise ExternalServiceError("storage", "Upload failed")
        self.uploaded.append(public_id)
        return {"id": public_id, "url": f"https://res.cloudinary.test/{folder}/{public_id}"}

    def delete_image(self, public_id):
        if public_id in self.fail_deletes:
            raise ExternalServiceError("storage", "Delete failed")
        self.deleted.append(public_id)


class FakeMailer:
    def __init__(self):
        self.succeed = True
        self.sent = []

    def send(self, to_email, subject, text_content, html_content=None):
        self.sent.append({"to": to_email, "subject": subject, "text": text_content})
        return self.succeed


class FakeGateway:
    """Payments keyed by id: ``{"status": ..., "amount": paise}``. ``fail_refunds`` counts refunds left to fail."""

    def __init__(self):
        self.payments = {}
        self.orders = []
        self.captured = []
        self.refunds = []
        self.fail_refunds = 0

    def add_payment(self, payment_id, amount_paise, status="authorized"):
        self.payments[payment_id] = {"id": payment_id, "status": status, "amount": amount_paise}

    def create_order(self, amount, receipt):
        order = {"id": f"order_{len(self.orders) + 1}", "amount": amount, "currency": "INR", "receipt": receipt}
        self.orders.append(order)
        return order

    def fetch_payment(self, payment_id):
        return dict(self.payments[payment_id])

    def capture_payment(self, payment_id, amount):
        self.captured.append((payment_id, amount))
        self.payments[payment_id]["status"] = "captured"
        return dict(self.payments[payment_id])

    def refund_payment(self, payment_id, amount):
        if self.fail_refunds:
            self.fail_refunds -= 1
            raise ExternalServiceError("payment", "Refund failed", status_code=502)
        self.refunds.append((payment_id, amount))
        return {"id": f"rfnd_{len(self.refunds)}", "payment_id": payment_id, "amount": amount}


# =====================================================
# APP + CLIENT
# =====================================================

@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", database_url="sqlite://", results_per_page=2)


@pytest.fixture
def app(settings):
    app = create_app(settings)
    app.state.storage = FakeStorage()
    app.state.mailer = FakeMailer()
    app.state.payment_gateway = FakeGateway()
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(app):
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(app):
    return app.state.storage


@pytest.fixture
def mailer(app):
    return app.state.mailer


@pytest.fixture
def gateway(app):
    return app.state.payment_gateway


# =====================================================
# DATA HELPERS
# =====================================================

@pytest.fixture
def make_user(db):
    def _make(role=Role.user, **fields):
        n = next(_counter)
        user = User(
            firstname=fields.get("firstname", "test"),
            lastname=fields.get("lastname", f"user{n}"),
            email=fields.get("email", f"user{n}@example.com"),
            phone_no=fields.get("phone_no", f"98765{n:05d}"),
            hashed_password=hash_password(fields.get("password", PASSWORD)),
            role=Role(role).value,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth(settings):
    def _headers(user):
        return {"Authorization": f"Bearer {create_token(user, settings)}"}

    return _headers


@pytest.fixture
def customer(make_user):
    return make_user(Role.user)


@pytest.fixture
def manager(make_user):
    return make_user(Role.manager)


@pytest.fixture
def admin(make_user):
    return make_user(Role.admin)


@pytest.fixture
def category(db, admin):
    category = Category(name="shoes", added_by_id=admin.id, added_by_role=admin.role)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@pytest.fixture
def make_product(db, category, admin):
    def _make(name="runner", price=1000, stock=5, brand="acme"):
        product = Product(
            name=name,
            price=price,
            description=f"{name} description",
            brand=brand,
            stock=stock,
            category_id=category.id,
            added_by_id=admin.id,
            added_by_role=admin.role,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE10NOW", discount=10, is_active=True):
        coupon = Coupon(code=code, discount=discount, is_active=is_active)
        db.add(coupon)
        db.commit()
        db.refresh(coupon)
        return coupon

    return _make
