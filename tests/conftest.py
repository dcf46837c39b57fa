import mongomock
import pytest

from plantnet import create_app

ADMIN_EMAIL = "admin@plantnet.dev"


class RecordingPaymentProcessor:
    def __init__(self, secret="pi_123_secret_456"):
        self.secret = secret
        self.calls = []

    def create_intent(self, amount, currency):
        self.calls.append((amount, currency))
        return self.secret


@pytest.fixture
def db():
    return mongomock.MongoClient().plantBD


@pytest.fixture
def payment_processor():
    return RecordingPaymentProcessor()


@pytest.fixture
def app(db, payment_processor):
    return create_app(
        {
            "TESTING": True,
            "APP_ENV": "development",
            "JWT_SECRET_KEY": "test-secret",
        },
        db=db,
        payment_processor=payment_processor,
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(email):
        response = client.post("/jwt", json={"email": email})
        assert response.status_code == 200
        return response

    return _login


@pytest.fixture
def admin_client(client, db, login):
    db.users.insert_one({"email": ADMIN_EMAIL, "role": "admin"})
    login(ADMIN_EMAIL)
    return client
