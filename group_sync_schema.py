import sqlalchemy as sa

metadata = sa.MetaData()

roles = sa.Table(
    "roles",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("tenant_id", sa.Integer, nullable=False, index=True),
    sa.Column("name", sa.String(255), nullable=False),
    sa.Column("description", sa.Text, nullable=True),
    sa.Column("status", sa.String(32), nullable=False, server_default="approved"),
    sa.Column("is_public", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("auto_assignment", sa.Boolean, nullable=False, server_default=sa.false()),
    # Marks roles created by the group sync; only these are ever deleted by it
    sa.Column("created_by_sync", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    sa.UniqueConstraint("tenant_id", "name", name="uq_roles_tenant_name"),
)

role_settings = sa.Table(
    "role_settings",
    metadata,
    sa.Column("role_id", sa.Integer, primary_key=True),
    sa.Column("name", sa.String(255), primary_key=True),
    sa.Column("value", sa.Text, nullable=True),
)

role_mappings = sa.Table(
    "role_mappings",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    # -1 applies to every tenant using the global settings
    sa.Column("tenant_id", sa.Integer, nullable=False),
    sa.Column("remote_group_name", sa.String(255), nullable=False),
    sa.Column("local_role_name", sa.String(255), nullable=False),
    sa.UniqueConstraint("tenant_id", "remote_group_name", name="uq_role_mappings_remote"),
)
