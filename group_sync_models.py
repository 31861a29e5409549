"""Value objects shared by the group sync modules."""

from dataclasses import dataclass, field
from typing import Optional

from group_sync_errors import GroupSyncError, ItemError

GLOBAL_SCOPE = -1


@dataclass(frozen=True)
class RemoteGroup:
    id: str
    display_name: str
    description: str = ""

    @classmethod
    def from_graph(cls, payload: dict) -> "RemoteGroup":
        return cls(
            id=payload.get("id", ""),
            display_name=payload.get("displayName") or "",
            description=payload.get("description") or "",
        )


@dataclass(frozen=True)
class RoleMapping:
    tenant_scope: int
    remote_group_name: str
    local_role_name: str


@dataclass(frozen=True)
class LocalRole:
    id: int
    name: str
    tenant_id: int
    description: str = ""
    created_by_sync: bool = False
    settings: dict = field(default_factory=dict, compare=False)


@dataclass
class SyncPlan:
    """Create/delete work computed for one tenant during one reconcile call."""

    to_create: list = field(default_factory=list)
    to_delete: list = field(default_factory=list)
    errors: list = field(default_factory=list)
    created: int = 0
    deleted: int = 0

    def record_error(self, subject, exc) -> ItemError:
        error = exc if isinstance(exc, ItemError) else ItemError(subject, str(exc))
        self.errors.append(error)
        return error


@dataclass
class SyncSummary:
    tenant_id: int
    created: int = 0
    deleted: int = 0
    errors: list = field(default_factory=list)
    fatal_error: Optional[GroupSyncError] = None

    @classmethod
    def from_plan(cls, tenant_id: int, plan: SyncPlan, fatal_error=None) -> "SyncSummary":
        return cls(
            tenant_id=tenant_id,
            created=plan.created,
            deleted=plan.deleted,
            errors=list(plan.errors),
            fatal_error=fatal_error,
        )

    @property
    def error_count(self) -> int:
        return len(self.errors) + (1 if self.fatal_error is not None else 0)

    @property
    def succeeded(self) -> bool:
        return self.fatal_error is None

    @property
    def error_details(self) -> Optional[str]:
        lines = [f"{e.subject}: {e.message}" for e in self.errors]
        if self.fatal_error is not None:
            lines.insert(0, f"{type(self.fatal_error).__name__}: {self.fatal_error}")
        return "\n".join(lines) if lines else None

    @property
    def message(self) -> str:
        counts = (
            f"(sync errors: {len(self.errors)}; groups created: {self.created}; "
            f"groups deleted: {self.deleted})"
        )
        if self.fatal_error is not None:
            return (
                f"Error while synchronizing the roles from tenant {self.tenant_id}: "
                f"{self.fatal_error} {counts}"
            )
        if self.errors:
            return (
                f"Tenant {self.tenant_id} synced with errors, check logs for more "
                f"information {counts}"
            )
        return f"Successfully synchronized tenant {self.tenant_id} {counts}"

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "created": self.created,
            "deleted": self.deleted,
            "error_count": self.error_count,
            "error_details": self.error_details,
            "succeeded": self.succeeded,
            "message": self.message,
        }
