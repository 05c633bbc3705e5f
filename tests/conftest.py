import os

# Settings are read once at import time
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-consult-booking")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SUPERVISOR_ENABLED", "false")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("REDIS_URL", "")

import pytest

from support import FakeClock, build_core, register_people


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def core(clock):
    return build_core(clock=clock)


@pytest.fixture
def people(core):
    return register_people(core)
