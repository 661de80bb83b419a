from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from flowforge.auth.service import build_auth_service
from flowforge.core.config import Settings
from web_api.app import create_app


class FakeClock:
    """Manually advanced clock (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    # Low bcrypt cost keeps the suite fast
    return Settings(data_dir=tmp_path / "data", rate_limit_enabled=False, bcrypt_rounds=4)


@pytest.fixture
def reset_outbox():
    """Collects (user, secret) pairs handed to the reset delivery hook."""
    return []


@pytest.fixture
def service(settings, clock, reset_outbox):
    return build_auth_service(
        settings, clock=clock, reset_delivery=lambda user, secret: reset_outbox.append((user, secret))
    )


@pytest.fixture
def api(settings, service) -> TestClient:
    return TestClient(create_app(settings, service=service))

