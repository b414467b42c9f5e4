import pytest

from imagestatus_mcp.client import StoreClient


class TestCase:
    """Base class for resource tests; every test runs against the fake image store."""

    @pytest.fixture(autouse=True)
    def _store_client(self, store_client: StoreClient) -> StoreClient:
        return store_client
