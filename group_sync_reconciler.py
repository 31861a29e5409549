"""
Reconcile a tenant's local roles with the groups of its identity directory.

Missing roles are created and tagged as created by the sync. Tagged roles
whose group disappeared are deleted. Roles named by a role mapping are never
deleted, and once a tenant has any role mapping only mapped groups are
considered and no name prefix is applied.
"""

import logging

from group_sync_config import GROUP_NAME_PREFIX
from group_sync_errors import CancellationError, ConfigurationError, GroupSyncError, StoreError
from group_sync_models import SyncPlan, SyncSummary

task_logger = logging.getLogger("airflow.task")


def effective_prefix(group_prefix: str, prefix_enabled: bool, mappings) -> str:
    """Prefix for new role names. Any role mapping switches prefixing off."""
    if mappings:
        return ""
    return group_prefix if prefix_enabled else ""


def filter_mapped_groups(groups, mapped_remote_names) -> list:
    return [g for g in groups if g.display_name in mapped_remote_names]


def resolve_local_name(display_name: str, mapped_local_name, prefix: str) -> str:
    if mapped_local_name is not None:
        return mapped_local_name
    return f"{prefix}{display_name}"


def unprefixed_name(role_name: str, strip_prefix: str) -> str:
    # Drops the prefix length without checking, so toggling the prefix setting
    # between runs makes earlier roles look orphaned.
    return role_name[len(strip_prefix):] if strip_prefix else role_name


def plan_deletions(tagged_roles, mapped_local_names, roster_names, strip_prefix: str) -> list:
    """Tagged roles that are neither mapped nor backed by a group of the roster."""
    candidates = [r for r in tagged_roles if r.name not in mapped_local_names]
    if not roster_names:
        return candidates
    return [r for r in candidates if unprefixed_name(r.name, strip_prefix) not in roster_names]


def _check_cancelled(cancel_event, where):
    if cancel_event is not None and cancel_event.is_set():
        raise CancellationError(f"Role sync cancelled {where}")


class Reconciler:
    def __init__(self, group_source, mapping_table, role_store, group_prefix=GROUP_NAME_PREFIX):
        self.group_source = group_source
        self.mapping_table = mapping_table
        self.role_store = role_store
        self.group_prefix = group_prefix

    def reconcile(self, tenant_id: int, config, cancel_event=None) -> SyncSummary:
        """
        Run one reconciliation for ``tenant_id``.

        Configuration, fetch, cancellation and store read errors abort the
        tenant and are returned as ``fatal_error``. Creates and deletes already
        committed stay in place. Failed creates and deletes are collected in
        ``errors`` and do not stop the run.
        """
        plan = SyncPlan()
        try:
            self._sync(tenant_id, config, plan, cancel_event)
        except GroupSyncError as e:
            task_logger.error(f"Error while synchronizing the roles from tenant {tenant_id}: {e}")
            return SyncSummary.from_plan(tenant_id, plan, fatal_error=e)

        summary = SyncSummary.from_plan(tenant_id, plan)
        if summary.errors:
            task_logger.error(f"Role sync errors detected on tenant {tenant_id}:\n{summary.error_details}")
        return summary

    def _sync(self, tenant_id, config, plan, cancel_event):
        if not config.has_credentials:
            raise ConfigurationError(f"Application id or secret are not valid on tenant {tenant_id}")

        scope = self.mapping_table.scope_for(tenant_id, config.use_global_role_mappings)
        mappings = self.mapping_table.mappings_for(tenant_id, config.use_global_role_mappings)
        mapped_remote_names = self.mapping_table.remote_names(scope)
        mapped_local_names = self.mapping_table.local_names(scope)
        prefix = effective_prefix(self.group_prefix, config.group_name_prefix_enabled, mappings)

        roster_names = set()
        for page in self.group_source.iter_group_pages(config, cancel_event=cancel_event):
            if mappings:
                page = filter_mapped_groups(page, mapped_remote_names)
            for group in page:
                _check_cancelled(cancel_event, f"while processing group '{group.display_name}'")
                roster_names.add(group.display_name)
                local_name = resolve_local_name(
                    group.display_name,
                    self.mapping_table.local_name_for(scope, group.display_name),
                    prefix,
                )
                if self.role_store.find_by_name(tenant_id, local_name) is not None:
                    continue
                plan.to_create.append((group, local_name))
                self._create_role(tenant_id, group, local_name, plan)

        _check_cancelled(cancel_event, "before removing stale roles")
        tagged_roles = self.role_store.list_tagged(tenant_id)
        strip_prefix = self.group_prefix if config.group_name_prefix_enabled else ""
        plan.to_delete = plan_deletions(tagged_roles, mapped_local_names, roster_names, strip_prefix)
        for role in plan.to_delete:
            self._delete_role(tenant_id, role, plan)

    def _create_role(self, tenant_id, group, local_name, plan):
        try:
            self.role_store.create(tenant_id, local_name, group.description, created_by_sync=True)
        except StoreError as e:
            plan.record_error(local_name, e)
            task_logger.error(f"[ROLES] ✗ CREATE FAILED for '{local_name}' on tenant {tenant_id}: {e}")
        else:
            plan.created += 1
            task_logger.info(f"[ROLES] ✓ CREATE: '{local_name}' on tenant {tenant_id}")

    def _delete_role(self, tenant_id, role, plan):
        try:
            self.role_store.delete(role)
        except StoreError as e:
            plan.record_error(role.name, e)
            task_logger.error(f"[ROLES] ✗ DELETE FAILED for '{role.name}' on tenant {tenant_id}: {e}")
        else:
            plan.deleted += 1
            task_logger.info(f"[ROLES] ✓ DELETE: '{role.name}' on tenant {tenant_id}")
