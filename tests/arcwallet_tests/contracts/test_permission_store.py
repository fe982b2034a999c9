"""
Unit tests for the permission store.
"""

import pytest

from arcwallet.core.account_exceptions import GrantNotFound, InvalidArgument, NameAlreadyRegistered
from arcwallet.core.contracts.permission_store import (
    ANY_CALLER,
    AdminRecord,
    AnyCaller,
    Grant,
    GrantKey,
    PermissionStore,
    SpecificCaller,
    as_allowed_caller,
)


@pytest.fixture
def store():
    return PermissionStore("0xadmin", revocation_app_id=77)


class TestAllowedCaller:
    def test_plain_address_becomes_specific(self):
        assert as_allowed_caller("0xabc") == SpecificCaller("0xabc")

    def test_variants_pass_through(self):
        assert as_allowed_caller(ANY_CALLER) is ANY_CALLER
        caller = SpecificCaller("0xabc")
        assert as_allowed_caller(caller) is caller

    def test_wildcard_never_equals_an_address(self):
        assert AnyCaller() == ANY_CALLER
        assert SpecificCaller("*") != ANY_CALLER
        assert GrantKey(1, SpecificCaller("*")) != GrantKey(1, ANY_CALLER)

    def test_rejects_empty_and_unknown(self):
        with pytest.raises(InvalidArgument):
            SpecificCaller("")
        with pytest.raises(InvalidArgument):
            as_allowed_caller(42)

    def test_key_string_form(self):
        assert str(GrantKey(5, ANY_CALLER)) == "5:*"
        assert str(GrantKey(5, SpecificCaller("0xabc"))) == "5:0xabc"


class TestAdminRecord:
    def test_replace_returns_previous(self, store):
        assert store.replace_admin("0xnew") == "0xadmin"
        assert store.admin == "0xnew"

    def test_never_empty(self, store):
        with pytest.raises(InvalidArgument):
            store.replace_admin("")
        assert store.admin == "0xadmin"
        with pytest.raises(InvalidArgument):
            PermissionStore("")
        with pytest.raises(InvalidArgument):
            AdminRecord("0xa").replace("")

    def test_replace_revocation_authority(self, store):
        assert store.replace_revocation_authority(None) == 77
        assert store.revocation_app_id is None


class TestGrants:
    def test_put_and_get(self, store):
        key = GrantKey(1, SpecificCaller("0xcaller"))
        store.put_grant(key, Grant(100, 5))
        grant = store.get_grant(key)
        assert grant.last_valid_round == 100
        assert grant.last_called is None
        assert list(store.grants()) == [(key, grant)]

    def test_delete_missing_raises(self, store):
        with pytest.raises(GrantNotFound):
            store.delete_grant(GrantKey(1, ANY_CALLER))

    def test_stamp_usage_is_monotonic(self, store):
        key = GrantKey(1, ANY_CALLER)
        store.put_grant(key, Grant(100, 0))
        store.stamp_usage(key, 10)
        store.stamp_usage(key, 10)
        with pytest.raises(InvalidArgument):
            store.stamp_usage(key, 9)
        assert store.get_grant(key).last_called == 10

    def test_stamp_missing_grant(self, store):
        with pytest.raises(GrantNotFound):
            store.stamp_usage(GrantKey(1, ANY_CALLER), 1)

    def test_to_dict(self):
        assert Grant(10, 2, True, 4).to_dict() == {
            "last_valid_round": 10,
            "cooldown": 2,
            "admin_privileges": True,
            "last_called": 4,
        }


class TestNamedGrants:
    def test_put_named_creates_both(self, store):
        key = GrantKey(1, ANY_CALLER)
        store.put_named("x", key, Grant(1000, 0))
        assert store.get_named("x") == key
        assert store.get_grant(key) is not None

    def test_duplicate_name_changes_nothing(self, store):
        key = GrantKey(1, ANY_CALLER)
        store.put_named("x", key, Grant(1000, 0))
        other = GrantKey(2, ANY_CALLER)
        with pytest.raises(NameAlreadyRegistered):
            store.put_named("x", other, Grant(5, 5))
        assert store.get_named("x") == key
        assert store.get_grant(other) is None

    def test_delete_named_removes_both(self, store):
        key = GrantKey(1, ANY_CALLER)
        store.put_named("x", key, Grant(1000, 0))
        assert store.delete_named("x") == key
        assert store.get_named("x") is None
        assert store.get_grant(key) is None

    def test_delete_grant_removes_every_name(self, store):
        key = GrantKey(1, ANY_CALLER)
        store.put_named("a", key, Grant(1000, 0))
        store.put_named("b", key, Grant(1000, 0))
        assert sorted(store.delete_grant(key)) == ["a", "b"]
        assert store.names() == {}

    def test_delete_unknown_name(self, store):
        with pytest.raises(GrantNotFound):
            store.delete_named("nope")


class TestDomains:
    def test_bind_and_lookup(self, store):
        store.bind_domain("0xpasskey", "co-admin")
        assert store.domain_of("0xpasskey") == "co-admin"
        assert store.domain_of("0xother") is None
        assert store.domains() == {"0xpasskey": "co-admin"}
