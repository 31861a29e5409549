import pytest
import sqlalchemy as sa

from group_sync_errors import StoreError
from group_sync_models import LocalRole
from group_sync_schema import role_settings, roles
from local_role_store import LocalRoleStore


def test_create_and_find_by_name(role_store):
    role_id = role_store.create(1, "SVC-Managers", "Site managers")

    role = role_store.find_by_name(1, "SVC-Managers")
    assert role.id == role_id
    assert role.tenant_id == 1
    assert role.description == "Site managers"
    assert role.created_by_sync


def test_created_roles_are_approved_and_private(engine, role_store):
    role_id = role_store.create(1, "Managers")

    with engine.connect() as conn:
        row = conn.execute(sa.select(roles).where(roles.c.id == role_id)).one()
    assert row.status == "approved"
    assert not row.is_public
    assert not row.auto_assignment


def test_find_by_name_is_exact_and_tenant_scoped(role_store):
    role_store.create(1, "Managers")

    assert role_store.find_by_name(1, "managers") is None
    assert role_store.find_by_name(1, "Managers ") is None
    assert role_store.find_by_name(2, "Managers") is None


def test_duplicate_name_raises_store_error(role_store):
    role_store.create(1, "Managers")

    with pytest.raises(StoreError, match="Could not create role 'Managers'"):
        role_store.create(1, "Managers")
    # the same name on another tenant is fine
    role_store.create(2, "Managers")


def test_list_tagged_only_returns_sync_roles(role_store):
    role_store.create(1, "Synced", created_by_sync=True)
    role_store.create(1, "Manual", created_by_sync=False)
    role_store.create(2, "OtherTenant", created_by_sync=True)

    assert [r.name for r in role_store.list_tagged(1)] == ["Synced"]
    assert [r.name for r in role_store.list_roles(1)] == ["Synced", "Manual"]


def test_delete_removes_role_and_its_settings(engine, role_store):
    role_id = role_store.create(1, "Managers")
    keep_id = role_store.create(1, "Editors")
    role_store.set_setting(role_id, "Color", "blue")
    role_store.set_setting(keep_id, "Color", "red")

    role_store.delete(role_store.find_by_name(1, "Managers"))

    assert role_store.find_by_name(1, "Managers") is None
    with engine.connect() as conn:
        remaining = conn.execute(sa.select(role_settings.c.role_id)).scalars().all()
    assert remaining == [keep_id]


def test_delete_missing_role_raises_store_error(role_store):
    ghost = LocalRole(id=999, name="Ghost", tenant_id=1, created_by_sync=True)

    with pytest.raises(StoreError, match="no longer exists"):
        role_store.delete(ghost)


def test_set_setting_overwrites_and_is_loaded_with_role(role_store):
    role_id = role_store.create(1, "Managers")
    role_store.set_setting(role_id, "Color", "blue")
    role_store.set_setting(role_id, "Color", "green")

    assert role_store.find_by_name(1, "Managers").settings == {"Color": "green"}


def test_from_url_creates_tables(tmp_path):
    store = LocalRoleStore.from_url(f"sqlite:///{tmp_path / 'roles.db'}", create_tables=True)

    store.create(1, "Managers")
    assert [r.name for r in store.list_roles(1)] == ["Managers"]


def test_read_failure_raises_store_error():
    # tables were never created
    store = LocalRoleStore(sa.create_engine("sqlite://"))

    with pytest.raises(StoreError):
        store.list_tagged(1)
    with pytest.raises(StoreError):
        store.find_by_name(1, "Managers")
