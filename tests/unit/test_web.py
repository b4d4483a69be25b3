"""Unit tests for the image version metadata API."""

from __future__ import annotations

import pytest

from image_rampup.catalog.memory import InMemoryCatalog
from image_rampup.models import State
from image_rampup.resolver import VersionResolver
from image_rampup.rules import RampRuleEvaluator
from image_rampup.web import create_app


@pytest.fixture
def catalog():
    catalog = InMemoryCatalog()
    catalog.add_version("spark", "3.0.0", path="registry/spark", state=State.ACTIVE)
    catalog.add_version("spark", "3.1.0", path="registry/spark", state=State.NEW)
    catalog.add_version("hive", "2.0", path="registry/hive", state=State.UNSTABLE)
    catalog.add_image_type("pig")
    catalog.set_rampup("spark", [("3.1.0", 20)])
    return catalog


@pytest.fixture
def client(catalog):
    resolver = VersionResolver(catalog, catalog, catalog, RampRuleEvaluator(catalog))
    app = create_app(resolver)
    app.testing = True
    return app.test_client()


class TestImageVersionRoutes:
    """Test /api/v1/image-versions."""

    def test_list_image_versions(self, client):
        """Test metadata for every image type."""
        response = client.get("/api/v1/image-versions")
        assert response.status_code == 200

        data = response.get_json()
        assert data["total"] == 3
        types = data["image_types"]
        assert types["spark"]["version"] == "3.1.0"
        assert types["spark"]["selection"] == "rampup"
        assert types["spark"]["rampup"] == [{"version": "3.1.0", "percentage": 20}]
        assert types["hive"]["selection"] == "non-active-fallback"
        assert types["pig"]["version"] is None
        assert types["pig"]["selection"] == "no-version"

    def test_version_info(self, client):
        """Test exact version lookup."""
        response = client.get("/api/v1/image-versions/SPARK/3.0.0")
        assert response.status_code == 200
        assert response.get_json() == {
            "image_type": "spark",
            "version": "3.0.0",
            "path": "registry/spark",
            "state": "ACTIVE",
        }

    def test_version_info_state_filter(self, client):
        """Test ?state= filters are applied."""
        response = client.get("/api/v1/image-versions/spark/3.1.0?state=ACTIVE&state=NEW")
        assert response.status_code == 200

        response = client.get("/api/v1/image-versions/spark/3.1.0?state=ACTIVE")
        assert response.status_code == 404
        assert response.get_json()["error_code"] == "NOT_FOUND"

    def test_version_info_bad_state(self, client):
        """Test unknown states are a bad request."""
        response = client.get("/api/v1/image-versions/spark/3.1.0?state=RETIRED")
        assert response.status_code == 400

    def test_version_info_not_found(self, client):
        """Test unknown versions return 404."""
        response = client.get("/api/v1/image-versions/spark/9.9.9")
        assert response.status_code == 404
        assert "9.9.9" in response.get_json()["message"]


class TestRampupRoutes:
    """Test /api/v1/image-types/<type>/rampup."""

    def test_rampup_plan(self, client, catalog):
        """Test plans are reported with bucket ranges."""
        catalog.set_rampup("spark", [("3.1.0", 20), ("3.0.0", 70)])
        response = client.get("/api/v1/image-types/Spark/rampup")
        assert response.status_code == 200

        data = response.get_json()
        assert data["image_type"] == "spark"
        assert data["allocated"] == 90
        assert data["plan_order"] == "normalize"
        assert data["entries"] == [
            {"version": "3.1.0", "percentage": 20, "buckets": [1, 20]},
            {"version": "3.0.0", "percentage": 70, "buckets": [21, 90]},
        ]

    def test_no_plan(self, client):
        """Test image types without a plan return 404."""
        response = client.get("/api/v1/image-types/hive/rampup")
        assert response.status_code == 404

    def test_invalid_plan(self, catalog):
        """Test plans rejected by the ordering policy return 422."""
        catalog.set_rampup("spark", [("3.0.0", 70), ("3.1.0", 20)])
        resolver = VersionResolver(
            catalog, catalog, catalog, RampRuleEvaluator(catalog), plan_order="reject"
        )
        client = create_app(resolver).test_client()
        response = client.get("/api/v1/image-types/spark/rampup")
        assert response.status_code == 422
        assert response.get_json()["error_code"] == "INVALID_RAMPUP_PLAN"
