"""
Explicit remote group name -> local role name rules.

A table is loaded once per sync run and handed to every tenant's reconciler.
It is never mutated after construction, so tenants can share it across
threads.
"""

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from group_sync_errors import ConfigurationError, StoreError
from group_sync_models import GLOBAL_SCOPE, RoleMapping
from group_sync_schema import role_mappings


class RoleMappingTable:
    def __init__(self, mappings=()):
        self._by_scope = {}
        self._by_remote = {}
        for mapping in mappings:
            key = (mapping.tenant_scope, mapping.remote_group_name)
            if key in self._by_remote:
                raise ConfigurationError(
                    f"Duplicate role mapping for group '{mapping.remote_group_name}' "
                    f"on tenant scope {mapping.tenant_scope}"
                )
            self._by_remote[key] = mapping
            self._by_scope.setdefault(mapping.tenant_scope, []).append(mapping)

    @classmethod
    def load(cls, engine: sa.engine.Engine) -> "RoleMappingTable":
        try:
            with engine.connect() as conn:
                rows = conn.execute(
                    sa.select(
                        role_mappings.c.tenant_id,
                        role_mappings.c.remote_group_name,
                        role_mappings.c.local_role_name,
                    ).order_by(role_mappings.c.id)
                ).fetchall()
        except SQLAlchemyError as e:
            raise StoreError(f"Could not load role mappings: {e}") from e
        return cls(RoleMapping(tenant_id, remote, local) for tenant_id, remote, local in rows)

    @staticmethod
    def scope_for(tenant_id: int, use_global_settings: bool = False) -> int:
        return GLOBAL_SCOPE if use_global_settings else tenant_id

    def mappings_for(self, tenant_id: int, use_global_settings: bool = False) -> list:
        scope = self.scope_for(tenant_id, use_global_settings)
        return list(self._by_scope.get(scope, ()))

    def local_name_for(self, scope: int, remote_group_name: str):
        mapping = self._by_remote.get((scope, remote_group_name))
        return mapping.local_role_name if mapping else None

    def local_names(self, scope: int) -> frozenset:
        return frozenset(m.local_role_name for m in self._by_scope.get(scope, ()))

    def remote_names(self, scope: int) -> frozenset:
        return frozenset(m.remote_group_name for m in self._by_scope.get(scope, ()))

    def __len__(self):
        return len(self._by_remote)
