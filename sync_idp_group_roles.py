"""
DAG that mirrors identity provider groups as local application roles.

For every tenant with role sync enabled, the groups of the tenant's directory
(Microsoft Graph ``/groups``) are listed and compared with the local roles:

- missing roles are created and flagged as created by the sync
- flagged roles whose group is gone are deleted
- roles named by a role mapping are never deleted
- when a tenant has role mappings, only mapped groups are synced and the
  ``<service>-`` name prefix is not applied

Tenants are synced as mapped tasks, so they run in parallel and a failing
tenant does not stop the others.

### Required configuration
- LOCAL_ROLE_DB_URL: SQLAlchemy URL of the local role database
- GROUP_SYNC_TENANTS: Airflow Variable (or environment variable) holding the
  JSON list of tenant settings, see group_sync_config

### Optional
- GROUP_SYNC_BEFORE_SQL / GROUP_SYNC_AFTER_SQL: SQL run before/after the sync
- GROUP_SYNC_SERVICE_NAME, GRAPH_API_BASE_URL, GRAPH_PAGE_SIZE,
  GRAPH_TIMEOUT_SECONDS
"""

import logging
from datetime import timedelta

from pendulum import datetime

from airflow.exceptions import AirflowSkipException
from airflow.sdk import Variable, dag, get_current_context, task

from group_sync_config import (
    AFTER_SYNC_SQL,
    BEFORE_SYNC_SQL,
    GROUP_SYNC_TENANTS,
    LOCAL_ROLE_DB_URL,
    load_tenant_configs,
)

task_logger = logging.getLogger("airflow.task")


def get_tenant_configs():
    raw = Variable.get("GROUP_SYNC_TENANTS", default=GROUP_SYNC_TENANTS)
    return load_tenant_configs(raw)


def get_engine():
    import sqlalchemy as sa

    return sa.create_engine(LOCAL_ROLE_DB_URL, pool_pre_ping=True)


def run_tenant_sync(tenant_id, configs, orchestrator, mapping_table) -> dict:
    """Sync one tenant from the current settings, skipping it if it was removed or disabled."""
    config = next((c for c in configs if c.tenant_id == tenant_id), None)
    if config is None:
        raise AirflowSkipException(f"Tenant {tenant_id} is no longer configured")
    summary = orchestrator.sync_tenant(config, mapping_table)
    if summary is None:
        raise AirflowSkipException(f"Role sync was disabled on tenant {tenant_id}")
    return summary.to_dict()


@dag(
    start_date=datetime(2025, 1, 1),
    schedule="0 * * * *",  # Hourly
    catchup=False,
    max_active_runs=1,
    doc_md=__doc__,
    default_args={"owner": "Identity", "retries": 1, "retry_delay": timedelta(minutes=5)},
    tags=["identity", "sync", "roles"],
)
def sync_idp_group_roles():
    @task
    def validate_config() -> list[int]:
        """Check required settings and return the tenants to sync."""
        missing = []
        if not LOCAL_ROLE_DB_URL:
            missing.append("LOCAL_ROLE_DB_URL")

        configs = get_tenant_configs()
        if not configs:
            missing.append("GROUP_SYNC_TENANTS")
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

        tenant_ids = [c.tenant_id for c in configs if c.is_sync_enabled]
        skipped = [c.tenant_id for c in configs if not c.is_sync_enabled]
        if skipped:
            task_logger.info(f"Role sync disabled on tenants {skipped}")
        task_logger.info(f"Configuration validated, syncing tenants {tenant_ids}")
        return tenant_ids

    @task
    def before_sync() -> str | None:
        """Run the optional pre-sync SQL."""
        from group_sync_orchestrator import make_sql_hook, run_hook

        if not BEFORE_SYNC_SQL:
            task_logger.info("[HOOK] No before_sync SQL configured")
            return None
        return run_hook("before_sync", make_sql_hook(get_engine(), BEFORE_SYNC_SQL))

    @task(
        map_index_template="{{ custom_map_index }}",
        execution_timeout=timedelta(minutes=30),
    )
    def sync_tenant(tenant_id: int) -> dict:
        """Reconcile the roles of one tenant."""
        from graph_group_source import GraphGroupSource
        from group_sync_orchestrator import SyncOrchestrator
        from local_role_store import LocalRoleStore
        from role_mapping_table import RoleMappingTable

        context = get_current_context()
        context["custom_map_index"] = f"tenant {tenant_id}"

        engine = get_engine()
        orchestrator = SyncOrchestrator(
            role_store=LocalRoleStore(engine),
            group_source=GraphGroupSource(),
        )
        # Settings are re-read here; the tenant may have changed since validate_config
        return run_tenant_sync(tenant_id, get_tenant_configs(), orchestrator, RoleMappingTable.load(engine))

    @task(trigger_rule="all_done")
    def after_sync() -> str | None:
        """Run the optional post-sync SQL."""
        from group_sync_orchestrator import make_sql_hook, run_hook

        if not AFTER_SYNC_SQL:
            task_logger.info("[HOOK] No after_sync SQL configured")
            return None
        return run_hook("after_sync", make_sql_hook(get_engine(), AFTER_SYNC_SQL))

    @task(trigger_rule="all_done")
    def generate_sync_report(summaries, hook_errors=None) -> str:
        """Log a per-tenant summary of the run, with any failed hooks."""
        from group_sync_orchestrator import build_sync_report

        report = build_sync_report(list(summaries or []), notes=hook_errors or [])
        task_logger.info(f"\n{report}")
        return report

    # Step 1: Validate configuration and pick the tenants
    tenant_ids = validate_config()

    # Step 2: Optional pre-sync SQL
    before = before_sync()
    tenant_ids >> before

    # Step 3: One mapped task per tenant
    summaries = sync_tenant.expand(tenant_id=tenant_ids)
    before >> summaries

    # Step 4: Optional post-sync SQL, then the report
    after = after_sync()
    summaries >> after
    report = generate_sync_report(summaries, hook_errors=[before, after])
    after >> report


sync_idp_group_roles()
