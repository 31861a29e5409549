"""
Settings for the identity provider group sync.

Process-wide settings come from environment variables. Tenant settings are a
JSON list of objects (normally the GROUP_SYNC_TENANTS Airflow Variable), one
per tenant:

    [
        {
            "tenantId": 0,
            "applicationId": "...",
            "applicationSecret": "...",
            "tenantDirectoryId": "contoso.onmicrosoft.com",
            "useGlobalRoleMappings": false,
            "groupNamePrefixEnabled": true,
            "roleSyncEnabled": true
        }
    ]

Keys may also be given in snake_case.
"""

import json
import os
from dataclasses import dataclass

from group_sync_errors import ConfigurationError

SERVICE_NAME = os.getenv("GROUP_SYNC_SERVICE_NAME", "AzureB2C")
GROUP_NAME_PREFIX = f"{SERVICE_NAME}-"

GRAPH_API_BASE_URL = os.getenv("GRAPH_API_BASE_URL", "https://graph.microsoft.com/v1.0")
GRAPH_LOGIN_URL = os.getenv("GRAPH_LOGIN_URL", "https://login.microsoftonline.com")
GRAPH_PAGE_SIZE = int(os.getenv("GRAPH_PAGE_SIZE", "100"))
GRAPH_TIMEOUT_SECONDS = float(os.getenv("GRAPH_TIMEOUT_SECONDS", "30"))

LOCAL_ROLE_DB_URL = os.getenv("LOCAL_ROLE_DB_URL")
GROUP_SYNC_TENANTS = os.getenv("GROUP_SYNC_TENANTS")

# Optional SQL run before and after a sync (e.g. "EXEC AzureB2C_BeforeScheduledSync")
BEFORE_SYNC_SQL = os.getenv("GROUP_SYNC_BEFORE_SQL")
AFTER_SYNC_SQL = os.getenv("GROUP_SYNC_AFTER_SQL")

_KEY_ALIASES = {
    "tenantId": "tenant_id",
    "portalId": "tenant_id",
    "applicationId": "application_id",
    "applicationSecret": "application_secret",
    "tenantDirectoryId": "tenant_directory_id",
    "useGlobalRoleMappings": "use_global_role_mappings",
    "groupNamePrefixEnabled": "group_name_prefix_enabled",
    "roleSyncEnabled": "role_sync_enabled",
}

_BOOL_STRINGS = {"true": True, "1": True, "yes": True, "false": False, "0": False, "no": False}


def _as_bool(value, key):
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in _BOOL_STRINGS:
        return _BOOL_STRINGS[value.strip().lower()]
    raise ConfigurationError(f"Setting '{key}' must be a boolean, got {value!r}")


@dataclass(frozen=True)
class TenantSyncConfig:
    tenant_id: int
    application_id: str = ""
    application_secret: str = ""
    tenant_directory_id: str = ""
    use_global_role_mappings: bool = False
    group_name_prefix_enabled: bool = False
    role_sync_enabled: bool = False
    enabled: bool = True

    @classmethod
    def from_dict(cls, raw: dict) -> "TenantSyncConfig":
        values = {}
        for key, value in raw.items():
            name = _KEY_ALIASES.get(key, key)
            if name not in cls.__dataclass_fields__:
                continue
            values[name] = value

        if "tenant_id" not in values:
            raise ConfigurationError(f"Tenant settings without a tenant id: {sorted(raw)}")
        try:
            values["tenant_id"] = int(values["tenant_id"])
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid tenant id {values['tenant_id']!r}") from None

        for name in (
            "use_global_role_mappings",
            "group_name_prefix_enabled",
            "role_sync_enabled",
            "enabled",
        ):
            if name in values:
                values[name] = _as_bool(values[name], name)
        for name in ("application_id", "application_secret", "tenant_directory_id"):
            if values.get(name) is None:
                values[name] = ""
        return cls(**values)

    @property
    def has_credentials(self) -> bool:
        return bool(self.application_id) and bool(self.application_secret)

    @property
    def is_sync_enabled(self) -> bool:
        return self.enabled and self.role_sync_enabled

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}

    def __repr__(self):
        return (
            f"TenantSyncConfig(tenant_id={self.tenant_id}, "
            f"application_id={self.application_id!r}, "
            f"tenant_directory_id={self.tenant_directory_id!r}, "
            f"use_global_role_mappings={self.use_global_role_mappings}, "
            f"group_name_prefix_enabled={self.group_name_prefix_enabled}, "
            f"role_sync_enabled={self.role_sync_enabled}, enabled={self.enabled})"
        )


def load_tenant_configs(raw) -> list:
    """Parse tenant settings from a JSON string or an already decoded list."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ConfigurationError(f"Tenant settings are not valid JSON: {e}") from e
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        raise ConfigurationError("Tenant settings must be a JSON list of objects")

    configs = []
    seen = set()
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Tenant entry {i} must be an object")
        config = TenantSyncConfig.from_dict(entry)
        if config.tenant_id in seen:
            raise ConfigurationError(f"Tenant {config.tenant_id} is configured twice")
        seen.add(config.tenant_id)
        configs.append(config)
    return configs
