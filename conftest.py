from pathlib import Path
import sys

import pytest

# Ensure project root is on sys.path before tests import modules
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from components.authservice import AuthConfig, build_auth_service  # noqa: E402


class FakeClock:
    def __init__(self, start: int = 1_700_000_000):
        self.now = start

    def now_utc_ts(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class CapturingNotifier:
    def __init__(self):
        self.sent = []

    def send_reset_code(self, *, email: str, code: str, expires_at: int) -> None:
        self.sent.append({"email": email, "code": code, "expires_at": expires_at})

    def last_code(self, email: str) -> str:
        return [m["code"] for m in self.sent if m["email"] == email][-1]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cfg():
    # low work factor keeps the suite fast
    return AuthConfig(secret="test-secret", password_iterations=1_000, bootstrap_token="boot-123")


@pytest.fixture
def notifier():
    return CapturingNotifier()


@pytest.fixture
def svc(cfg, clock, notifier):
    return build_auth_service(cfg, clock=clock, notifier=notifier)
