import asyncio
import inspect
import os
import sys
from pathlib import Path

# Environment must be in place before any import initializes settings
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("ALLOW_REDIS_FALLBACK_DEV", "true")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
# Empty REDIS_URL selects the in-process cache
os.environ.setdefault("REDIS_URL", "")

import pytest  # noqa: E402
from argon2 import PasswordHasher, Type  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from muzee.service.email import EmailService  # noqa: E402
from muzee.service.passwords import PasswordService  # noqa: E402
from muzee.service.runtime import reset_runtime_for_tests  # noqa: E402


class RecordingEmailService(EmailService):
    """Captures outgoing mail instead of talking to SMTP."""

    def __init__(self, *, fail: bool = False) -> None:
        super().__init__()
        self.fail = fail
        self.codes: dict[str, list[str]] = {}
        self.messages: list[tuple[str, str, str]] = []

    def send_verification_code(self, to_email: str, code: str) -> bool:
        self.codes.setdefault(to_email, []).append(code)
        return super().send_verification_code(to_email, code)

    def send(self, to_email, subject, html_body, text_body=None) -> bool:
        if self.fail:
            raise ConnectionRefusedError("smtp unreachable")
        self.messages.append((to_email, subject, html_body))
        return True

    def last_code(self, email: str) -> str:
        return self.codes[email][-1]


def fast_password_service() -> PasswordService:
    return PasswordService(
        PasswordHasher(time_cost=1, memory_cost=8, parallelism=1, type=Type.ID)
    )


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def outbox():
    """Swap the runtime's email service for a recorder."""
    from muzee.service.runtime import get_runtime

    runtime = get_runtime()
    recorder = RecordingEmailService()
    runtime.auth.email = recorder
    runtime.auth.passwords = fast_password_service()
    return recorder


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
