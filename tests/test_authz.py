import pytest

from partyledger.errors import LedgerError, Unauthorized
from partyledger.services.authz import assert_owner, is_owner


def test_is_owner():
    assert is_owner("0xowner", "0xowner") is True
    assert is_owner("0xowner", "0xguest") is False


def test_assert_owner_passes_for_owner():
    assert_owner("0xowner", "0xowner")


def test_assert_owner_denied():
    with pytest.raises(Unauthorized):
        assert_owner("0xowner", "0xguest")


def test_unauthorized_is_permission_error():
    with pytest.raises(PermissionError):
        assert_owner("0xowner", "0xguest")
    assert issubclass(Unauthorized, LedgerError)
