"""
Integration tests for declared output caching through the full service stack.
"""

import json
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from service_output_cache.app.caching import get_output_cache_declaration, output_cache
from service_output_cache.app.main import OutputCacheService
from shared.config import get_config


@pytest.fixture
def service(tmp_path):
    """Service with catalog routes declaring output caching."""
    profiles = tmp_path / "profiles.json"
    profiles.write_text(json.dumps({
        "profiles": {
            "Default": {"duration": 60},
            "Catalog": {"duration": 600, "vary_by_query_keys": ["region"]},
        }
    }))
    config = get_config(
        "output_cache",
        8000,
        cache_profiles_file=str(profiles),
        default_expiration_seconds=45,
    )
    service = OutputCacheService(config)

    @service.app.get("/api/v1/catalog")
    @output_cache(cache_profile_name="Catalog", vary_by_query_keys=["page"])
    async def catalog(request: Request, page: int = 1):
        context = request.state.output_cache
        return {"page": page, "cache_key": context.cache_key, "vary": list(context.vary_by_query_keys)}

    @service.app.get("/api/v1/catalog/featured")
    @output_cache(vary_by_query_keys=[])
    async def featured(request: Request):
        return {"cache_key": request.state.output_cache.cache_key}

    @service.app.get("/api/v1/catalog/live")
    @output_cache(no_store=True, cache_profile_name="Catalog")
    async def live():
        return {"live": True}

    return service


@pytest.fixture
def client(service):
    """Test client for the service."""
    return TestClient(service.app)


class TestOutputCacheFlow:
    """End-to-end output caching scenarios."""

    def test_profile_with_explicit_vary(self, client):
        """Test that explicit vary keys replace the profile's keys."""
        response = client.get("/api/v1/catalog?page=2&region=eu")

        assert response.status_code == 200
        assert response.headers["cache-control"] == "public, max-age=600"
        assert response.json()["vary"] == ["page"]

    def test_cache_key_follows_vary_keys(self, client):
        """Test that region does not split entries once page is the only key."""
        eu = client.get("/api/v1/catalog?page=2&region=eu").json()["cache_key"]
        us = client.get("/api/v1/catalog?page=2&region=us").json()["cache_key"]
        other_page = client.get("/api/v1/catalog?page=3&region=eu").json()["cache_key"]

        assert eu == us
        assert eu != other_page

    def test_ignore_query_string(self, client):
        """Test that an explicit empty vary list ignores every query key."""
        first = client.get("/api/v1/catalog/featured?x=1").json()["cache_key"]
        second = client.get("/api/v1/catalog/featured?x=2").json()["cache_key"]

        assert first == second

    def test_default_expiration_from_config(self, client):
        """Test the configured default expiration applies when no duration is declared."""
        response = client.get("/api/v1/catalog/featured")

        assert response.headers["cache-control"] == "public, max-age=45"

    def test_no_store_with_profile(self, client):
        """Test that no-store survives a profile applied after it."""
        response = client.get("/api/v1/catalog/live")

        assert response.headers["cache-control"] == "no-store"

    def test_concurrent_requests_share_compiled_policies(self, service, client):
        """Test that concurrent requests observe one compiled policy tuple."""
        route = next(r for r in service.app.routes if getattr(r, "path", None) == "/api/v1/catalog")
        declaration = get_output_cache_declaration(route.endpoint)

        with ThreadPoolExecutor(max_workers=8) as pool:
            responses = list(pool.map(lambda page: client.get(f"/api/v1/catalog?page={page % 2}"), range(16)))

        assert {response.headers["cache-control"] for response in responses} == {"public, max-age=600"}
        assert declaration.is_compiled is True
        assert declaration.policies is declaration.policies

    def test_declared_routes_listing(self, client):
        """Test that the catalog routes appear in the introspection listing."""
        routes = {route["path"]: route for route in client.get("/api/v1/cache/routes").json()["routes"]}

        assert [policy["kind"] for policy in routes["/api/v1/catalog/live"]["declaration"]["policies"]] == [
            "no_store",
            "profile",
        ]
        assert routes["/api/v1/catalog"]["declaration"]["cache_profile_name"] == "Catalog"
