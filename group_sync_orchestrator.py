"""
Runs the role sync over every configured tenant.

Tenants are independent: a tenant whose sync fails is reported and the
others carry on. Role mappings are loaded once at the start of a run and
passed down to each tenant's reconciler.

Optional ``before_sync`` / ``after_sync`` hooks are plain callables taking no
arguments. ``make_sql_hook`` builds one that runs a SQL statement against the
local database.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

import sqlalchemy as sa

from group_sync_config import GROUP_NAME_PREFIX
from group_sync_errors import GroupSyncError
from group_sync_models import SyncSummary
from group_sync_reconciler import Reconciler

task_logger = logging.getLogger("airflow.task")

SyncHook = Callable[[], None]


@dataclass
class JobHistory:
    notes: list = field(default_factory=list)
    summaries: list = field(default_factory=list)
    succeeded: bool = True

    def add_log_note(self, note: str) -> None:
        self.notes.append(note)
        task_logger.info(note)


def make_sql_hook(engine: sa.engine.Engine, statement: str) -> SyncHook:
    def run_sql():
        with engine.begin() as conn:
            conn.execute(sa.text(statement))

    run_sql.__name__ = f"sql_hook({statement!r})"
    return run_sql


def run_hook(name: str, hook: Optional[SyncHook]) -> Optional[str]:
    """Run a hook and return an error description instead of raising."""
    if hook is None:
        return None
    task_logger.info(f"[HOOK] Running {name}")
    try:
        hook()
    except Exception as e:
        task_logger.exception(f"[HOOK] ✗ {name} failed: {e}")
        return f"{name} failed: {e}"
    task_logger.info(f"[HOOK] ✓ {name} finished")
    return None


class SyncOrchestrator:
    def __init__(
        self,
        role_store,
        group_source=None,
        mapping_loader: Optional[Callable] = None,
        before_sync: Optional[SyncHook] = None,
        after_sync: Optional[SyncHook] = None,
        max_workers: int = 1,
        group_prefix: str = GROUP_NAME_PREFIX,
        group_source_factory: Optional[Callable] = None,
    ):
        if group_source is None and group_source_factory is None:
            raise ValueError("SyncOrchestrator needs a group_source or a group_source_factory")
        self.mapping_loader = mapping_loader
        self.role_store = role_store
        self.group_source = group_source
        self.before_sync = before_sync
        self.after_sync = after_sync
        self.max_workers = max_workers
        self.group_prefix = group_prefix
        self.group_source_factory = group_source_factory

    def sync_tenant(self, config, mapping_table, cancel_event=None) -> Optional[SyncSummary]:
        """Reconcile one tenant. Returns None when role sync is off for it."""
        if not config.is_sync_enabled:
            task_logger.info(f"Role sync disabled on tenant {config.tenant_id}, skipping")
            return None

        try:
            # A factory gives each tenant run its own source (and HTTP session)
            group_source = self.group_source_factory() if self.group_source_factory else self.group_source
            reconciler = Reconciler(
                group_source,
                mapping_table,
                self.role_store,
                group_prefix=self.group_prefix,
            )
            summary = reconciler.reconcile(config.tenant_id, config, cancel_event=cancel_event)
        except Exception as e:
            task_logger.exception(f"Unexpected error while synchronizing tenant {config.tenant_id}")
            error = GroupSyncError(f"Unexpected error: {e}")
            error.__cause__ = e
            summary = SyncSummary(tenant_id=config.tenant_id, fatal_error=error)
        task_logger.info(summary.message)
        return summary

    def run(self, configs, cancel_event=None) -> JobHistory:
        if self.mapping_loader is None:
            raise ValueError("SyncOrchestrator.run needs a mapping_loader")
        history = JobHistory()
        history.add_log_note("Starting identity provider role synchronization")

        hook_error = run_hook("before_sync", self.before_sync)
        if hook_error:
            history.add_log_note(hook_error)

        try:
            mapping_table = self.mapping_loader()
        except GroupSyncError as e:
            history.succeeded = False
            history.add_log_note(f"Error performing identity provider role synchronization: {e}")
            return history

        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(
                    executor.map(lambda c: self.sync_tenant(c, mapping_table, cancel_event), configs)
                )
        else:
            results = [self.sync_tenant(c, mapping_table, cancel_event) for c in configs]

        for summary in results:
            if summary is None:
                continue
            history.summaries.append(summary)
            history.add_log_note(summary.message)
            if not summary.succeeded:
                history.succeeded = False

        hook_error = run_hook("after_sync", self.after_sync)
        if hook_error:
            history.add_log_note(hook_error)

        if history.succeeded:
            history.add_log_note("Identity provider role synchronization finished successfully")
        else:
            history.add_log_note("Identity provider role synchronization finished with tenant errors")
        return history


def build_sync_report(summaries, notes=()) -> str:
    """Text report over SyncSummary objects or their ``to_dict()`` form.

    ``notes`` are run-level messages such as failed hooks; empty ones are dropped.
    """
    rows = [s.to_dict() if isinstance(s, SyncSummary) else s for s in summaries if s]
    total_created = sum(r["created"] for r in rows)
    total_deleted = sum(r["deleted"] for r in rows)
    total_errors = sum(r["error_count"] for r in rows)

    report_lines = [
        "=" * 70,
        "IDENTITY PROVIDER ROLE SYNC REPORT",
        "=" * 70,
        "",
        "Tenant      | Created | Deleted | Errors | Status",
        "-" * 70,
    ]
    for r in rows:
        status = "OK" if r["succeeded"] and not r["error_count"] else "ERRORS"
        if not r["succeeded"]:
            status = "FAILED"
        report_lines.append(
            f"{r['tenant_id']:<11} | {r['created']:7} | {r['deleted']:7} | "
            f"{r['error_count']:6} | {status}"
        )
    report_lines.extend(
        [
            "-" * 70,
            f"{'TOTAL':<11} | {total_created:7} | {total_deleted:7} | {total_errors:6} |",
            "",
        ]
    )

    failing = [r for r in rows if r["error_details"]]
    if failing:
        report_lines.append(f"⚠️  ERRORS ({total_errors}) — ACTION REQUIRED:")
        for r in failing:
            for line in r["error_details"].splitlines():
                report_lines.append(f"    ✗ [tenant {r['tenant_id']}] {line}")
        report_lines.append("")

    notes = [n for n in notes if n]
    if notes:
        report_lines.append(f"NOTES ({len(notes)}):")
        report_lines.extend(f"    - {n}" for n in notes)
        report_lines.append("")

    if total_errors > 0:
        overall = f"⚠️  COMPLETED WITH {total_errors} ERROR(S)"
    elif total_created or total_deleted:
        overall = "CHANGES MADE"
    elif rows:
        overall = "IN SYNC"
    else:
        overall = "NO TENANTS SYNCED"
    report_lines.extend([f"Overall Status: {overall}", "=" * 70])
    return "\n".join(report_lines)
