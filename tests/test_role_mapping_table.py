import pytest

from group_sync_errors import ConfigurationError, StoreError
from group_sync_models import GLOBAL_SCOPE, RoleMapping
from group_sync_schema import role_mappings
from role_mapping_table import RoleMappingTable

MAPPINGS = [
    RoleMapping(GLOBAL_SCOPE, "Managers", "GlobalManagers"),
    RoleMapping(1, "Managers", "SiteManagers"),
    RoleMapping(1, "Editors", "SiteEditors"),
    RoleMapping(2, "Readers", "Readers"),
]


def test_mappings_for_tenant_or_global():
    table = RoleMappingTable(MAPPINGS)

    assert [m.local_role_name for m in table.mappings_for(1)] == ["SiteManagers", "SiteEditors"]
    assert [m.local_role_name for m in table.mappings_for(1, use_global_settings=True)] == ["GlobalManagers"]
    assert table.mappings_for(3) == []
    assert len(table) == 4


def test_scope_for():
    assert RoleMappingTable.scope_for(5) == 5
    assert RoleMappingTable.scope_for(5, use_global_settings=True) == GLOBAL_SCOPE


def test_lookups_by_scope():
    table = RoleMappingTable(MAPPINGS)

    assert table.local_name_for(1, "Managers") == "SiteManagers"
    assert table.local_name_for(GLOBAL_SCOPE, "Managers") == "GlobalManagers"
    assert table.local_name_for(1, "managers") is None
    assert table.local_name_for(2, "Managers") is None
    assert table.remote_names(1) == {"Managers", "Editors"}
    assert table.local_names(1) == {"SiteManagers", "SiteEditors"}
    assert table.local_names(7) == frozenset()


def test_duplicate_remote_name_in_one_scope_is_rejected():
    with pytest.raises(ConfigurationError, match="Duplicate role mapping for group 'Managers'"):
        RoleMappingTable(
            [
                RoleMapping(1, "Managers", "A"),
                RoleMapping(1, "Managers", "B"),
            ]
        )


def test_load_from_database(engine):
    with engine.begin() as conn:
        conn.execute(
            role_mappings.insert(),
            [
                {"tenant_id": -1, "remote_group_name": "Managers", "local_role_name": "GlobalManagers"},
                {"tenant_id": 1, "remote_group_name": "Editors", "local_role_name": "SiteEditors"},
            ],
        )

    table = RoleMappingTable.load(engine)

    assert table.local_name_for(GLOBAL_SCOPE, "Managers") == "GlobalManagers"
    assert [m.remote_group_name for m in table.mappings_for(1)] == ["Editors"]


def test_load_failure_raises_store_error():
    import sqlalchemy as sa

    with pytest.raises(StoreError, match="Could not load role mappings"):
        RoleMappingTable.load(sa.create_engine("sqlite://"))
