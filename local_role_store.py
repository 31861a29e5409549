"""
Local role directory backed by a relational database.

Every method runs in its own transaction. A reconcile run is a series of
independent commits, so a failure half way leaves earlier creates and deletes
in place.
"""

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from group_sync_errors import StoreError
from group_sync_models import LocalRole
from group_sync_schema import metadata, role_settings, roles


class LocalRoleStore:
    def __init__(self, engine: sa.engine.Engine):
        self.engine = engine

    @classmethod
    def from_url(cls, url: str, create_tables: bool = False, **engine_kwargs) -> "LocalRoleStore":
        engine = sa.create_engine(url, **engine_kwargs)
        if create_tables:
            metadata.create_all(engine)
        return cls(engine)

    def _load_settings(self, conn, role_ids):
        if not role_ids:
            return {}
        rows = conn.execute(
            sa.select(role_settings.c.role_id, role_settings.c.name, role_settings.c.value).where(
                role_settings.c.role_id.in_(role_ids)
            )
        )
        settings = {}
        for role_id, name, value in rows:
            settings.setdefault(role_id, {})[name] = value
        return settings

    def _to_roles(self, conn, rows):
        rows = list(rows)
        settings = self._load_settings(conn, [row.id for row in rows])
        return [
            LocalRole(
                id=row.id,
                name=row.name,
                tenant_id=row.tenant_id,
                description=row.description or "",
                created_by_sync=bool(row.created_by_sync),
                settings=settings.get(row.id, {}),
            )
            for row in rows
        ]

    def create(self, tenant_id: int, name: str, description: str = "", created_by_sync: bool = True) -> int:
        """Create an approved, private role and return its id."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    roles.insert().values(
                        tenant_id=tenant_id,
                        name=name,
                        description=description,
                        status="approved",
                        is_public=False,
                        auto_assignment=False,
                        created_by_sync=created_by_sync,
                    )
                )
                role_id = result.inserted_primary_key[0]
        except SQLAlchemyError as e:
            raise StoreError(f"Could not create role '{name}' on tenant {tenant_id}: {e}") from e
        return role_id

    def find_by_name(self, tenant_id: int, name: str):
        """Exact, case-sensitive lookup. Returns None when the role does not exist."""
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(
                    sa.select(roles).where(roles.c.tenant_id == tenant_id, roles.c.name == name)
                ).fetchall()
                # Some collations compare case-insensitively; keep only exact matches
                matches = [row for row in rows if row.name == name]
                found = self._to_roles(conn, matches[:1])
        except SQLAlchemyError as e:
            raise StoreError(f"Could not look up role '{name}' on tenant {tenant_id}: {e}") from e
        return found[0] if found else None

    def list_tagged(self, tenant_id: int) -> list:
        """Roles of the tenant that were created by the group sync."""
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(
                    sa.select(roles)
                    .where(roles.c.tenant_id == tenant_id, roles.c.created_by_sync.is_(True))
                    .order_by(roles.c.id)
                )
                return self._to_roles(conn, rows)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not list synchronized roles on tenant {tenant_id}: {e}") from e

    def list_roles(self, tenant_id: int) -> list:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(
                    sa.select(roles).where(roles.c.tenant_id == tenant_id).order_by(roles.c.id)
                )
                return self._to_roles(conn, rows)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not list roles on tenant {tenant_id}: {e}") from e

    def delete(self, role: LocalRole) -> None:
        """Delete a role together with its settings rows."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    roles.delete().where(roles.c.id == role.id, roles.c.tenant_id == role.tenant_id)
                )
                if result.rowcount == 0:
                    raise StoreError(f"Role '{role.name}' (id {role.id}) no longer exists on tenant {role.tenant_id}")
                # role_settings has no foreign key, orphaned rows are removed here
                conn.execute(role_settings.delete().where(role_settings.c.role_id == role.id))
        except SQLAlchemyError as e:
            raise StoreError(f"Could not delete role '{role.name}' on tenant {role.tenant_id}: {e}") from e

    def set_setting(self, role_id: int, name: str, value) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    role_settings.delete().where(
                        role_settings.c.role_id == role_id, role_settings.c.name == name
                    )
                )
                conn.execute(role_settings.insert().values(role_id=role_id, name=name, value=value))
        except SQLAlchemyError as e:
            raise StoreError(f"Could not store setting '{name}' for role {role_id}: {e}") from e
