import pytest
import sqlalchemy as sa

from group_sync_config import TenantSyncConfig
from group_sync_errors import FetchError
from group_sync_models import RemoteGroup
from group_sync_schema import metadata
from local_role_store import LocalRoleStore


class FakeGroupSource:
    """Serves canned pages of group names, optionally failing on one page."""

    def __init__(self, pages, fail_on_page=None):
        self.pages = pages
        self.fail_on_page = fail_on_page
        self.calls = 0

    def iter_group_pages(self, credentials, cancel_event=None):
        self.calls += 1
        for number, names in enumerate(self.pages, start=1):
            if number == self.fail_on_page:
                raise FetchError(f"Group listing page {number} failed with HTTP 503")
            yield [RemoteGroup(id=f"id-{name}", display_name=name, description=f"{name} group") for name in names]


@pytest.fixture
def engine():
    engine = sa.create_engine("sqlite://")
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def role_store(engine):
    return LocalRoleStore(engine)


@pytest.fixture
def make_source():
    return FakeGroupSource


@pytest.fixture
def tenant_config():
    return TenantSyncConfig(
        tenant_id=1,
        application_id="app-id",
        application_secret="app-secret",
        tenant_directory_id="contoso.onmicrosoft.com",
        group_name_prefix_enabled=False,
        role_sync_enabled=True,
    )
