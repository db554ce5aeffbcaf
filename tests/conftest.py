import pytest

from app import create_app
from tests.helpers import T0, FixedClock, seed


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def make_app(tmp_path, clock):
    def _make(**overrides):
        config = {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "parkboard-test.db"),
            "BOOKING_CONFIRMATION_MODE": "automatic",
            "ONE_ACTIVE_BOOKING_PER_USER": False,
            "ONE_ACTIVE_BOOKING_SCOPE": "tenant",
            "STORE_TIMEOUT_SECONDS": 15,
            "NOTIFY_ENABLED": False,
            "CLOCK": clock,
            "LOG_LEVEL": "WARNING",
        }
        config.update(overrides)
        app = create_app(config)
        seed(app)
        return app
    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()
