import pytest

from consult_booking.application.errors import AuthError, NotFound
from consult_booking.application.ports.principal_repo import Role

from support import PASSWORD


def test_verify_credentials_returns_principal(core, people):
    p = core.directory.verify_credentials("Alice@Example.com ", PASSWORD)
    assert p.id == people.patient_a
    assert p.role == Role.PATIENT


def test_verify_credentials_wrong_password(core, people):
    with pytest.raises(AuthError):
        core.directory.verify_credentials("alice@example.com", "nope")


def test_verify_credentials_unknown_account(core, people):
    with pytest.raises(AuthError):
        core.directory.verify_credentials("ghost@example.com", PASSWORD)


def test_password_is_stored_hashed(core, people):
    p = core.principals.get_by_id(people.patient_a)
    assert p.password_hash != PASSWORD
    assert p.password_hash.startswith("$2")


def test_register_provider_creates_calendar_entry(core, people):
    provider = core.calendar.provider(people.provider_id)
    assert provider.fee_per_slot == 500
    assert provider.currency == "INR"
    assert core.directory.get_principal(people.provider_id).role == Role.PROVIDER


def test_get_principal_unknown():
    from support import build_core

    core = build_core()
    with pytest.raises(NotFound):
        core.directory.get_principal("missing")
