"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient
from ota_partfetch import __version__
from ota_partfetch.api import create_app

URL = "https://bigota.example.com/fastboot_rom.zip"


@pytest.fixture
def client(partfetch_config, http):
    return TestClient(create_app(partfetch_config, session=http))


class TestHealth:
    """Test the health endpoint."""

    def test_health(self, client):
        """Test status and version are reported."""
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": __version__, "cache_enabled": False}


class TestExtractEndpoint:
    """Test POST /api/partitions/extract."""

    def test_extract(self, client, http, zip_builder, firmware_members, tmp_path):
        """Test a remote member is written to the server path."""
        http.serve(URL, zip_builder(firmware_members))

        response = client.post("/api/partitions/extract", json={
            "locator": URL, "name": "boot", "destination": str(tmp_path), "verify": True,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["path"] == str(tmp_path / "boot.img")
        assert body["bytes_written"] == len(firmware_members["boot.img"])

    def test_extract_failure_in_body(self, client, http, zip_builder, firmware_members, tmp_path):
        """Test failures are reported with their kind, not as HTTP errors."""
        http.serve(URL, zip_builder(firmware_members))

        response = client.post("/api/partitions/extract", json={
            "locator": URL, "name": "recovery", "destination": str(tmp_path),
        })

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"] == "NotFound"

    def test_invalid_body(self, client):
        """Test request validation."""
        response = client.post("/api/partitions/extract", json={"locator": URL, "name": "boot"})
        assert response.status_code == 422

    def test_unknown_field(self, client, tmp_path):
        """Test unknown fields are rejected."""
        response = client.post("/api/partitions/extract", json={
            "locator": URL, "name": "boot", "destination": str(tmp_path), "retries": 2,
        })
        assert response.status_code == 422


class TestDownloadEndpoint:
    """Test POST /api/partitions/download."""

    def test_download(self, client, http, tmp_path):
        """Test a whole image download."""
        url = "https://cdn.example.com/images/boot.img"
        http.serve(url, b"B" * 2048)

        response = client.post("/api/partitions/download", json={"url": url, "destination": str(tmp_path)})

        assert response.json()["success"] is True
        assert (tmp_path / "boot.img").read_bytes() == b"B" * 2048


class TestMembersEndpoint:
    """Test POST /api/archives/members."""

    def test_list(self, client, http, zip_builder, firmware_members):
        """Test archive members are returned."""
        http.serve(URL, zip_builder(firmware_members))

        response = client.post("/api/archives/members", json={"locator": URL})

        body = response.json()
        assert body["success"] is True
        assert [m["name"] for m in body["members"]] == list(firmware_members)

    def test_list_failure(self, client):
        """Test an unreachable source is reported in the body."""
        response = client.post("/api/archives/members", json={"locator": URL})

        assert response.json() == {
            "success": False,
            "error": "NetworkError",
            "message": response.json()["message"],
        }
