"""
Integration tests for the HTTP API.

Tests cover:
- PUT/GET/DELETE of sections with JSON wire names
- Count endpoint
- Error status codes
- Health and good-to-go probes
"""

import asyncio
import os
import tempfile

import pytest
from fastapi.testclient import TestClient

from rwapp.sections_rw.api import create_http_app
from rwapp.sections_rw.graph import SqliteGraphStore
from rwapp.sections_rw.sections import SectionsService

PAYLOAD = {
    "uuid": "12345",
    "prefLabel": "Test",
    "alternativeIdentifiers": {
        "TME": ["TME_ID"],
        "uuids": ["12345"],
    },
}


class TestHttpServer:
    """Tests for the sections HTTP routes."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def client(self, data_dir):
        """Create a test client over an initialised service."""
        store = SqliteGraphStore(os.path.join(data_dir, "graph.db"), wal_mode=False)
        service = SectionsService(store)
        asyncio.run(service.initialise())
        return TestClient(create_http_app(service))

    def test_put_and_get(self, client):
        response = client.put("/sections/12345", json=PAYLOAD)

        assert response.status_code == 200
        assert response.json() == {"message": "PUT successful"}

        response = client.get("/sections/12345")

        assert response.status_code == 200
        assert response.json() == {
            "uuid": "12345",
            "prefLabel": "Test",
            "types": ["Thing", "Concept", "Classification", "Section"],
            "alternativeIdentifiers": {
                "TME": ["TME_ID"],
                "uuids": ["12345"],
            },
        }

    def test_types_in_payload_ignored(self, client):
        """The full ladder is applied whatever types are sent."""
        client.put("/sections/12345", json={**PAYLOAD, "types": ["Thing"]})

        response = client.get("/sections/12345")

        assert response.json()["types"] == ["Thing", "Concept", "Classification", "Section"]

    def test_put_null_fields(self, client):
        """Null fields are read as empty values."""
        response = client.put(
            "/sections/12345",
            json={
                "uuid": "12345",
                "prefLabel": None,
                "alternativeIdentifiers": {"TME": None, "uuids": None, "leiCode": None},
            },
        )

        assert response.status_code == 200

        response = client.get("/sections/12345")

        assert response.json()["prefLabel"] == ""
        assert response.json()["alternativeIdentifiers"] == {"uuids": []}

    def test_put_null_identifiers(self, client):
        response = client.put(
            "/sections/12345",
            json={"uuid": "12345", "prefLabel": "Test", "alternativeIdentifiers": None},
        )

        assert response.status_code == 200
        assert client.get("/sections/12345").json()["prefLabel"] == "Test"

    def test_put_uuid_mismatch(self, client):
        response = client.put("/sections/other", json=PAYLOAD)

        assert response.status_code == 400
        assert "do not match" in response.json()["detail"]

    def test_put_invalid_payload(self, client):
        response = client.put("/sections/12345", json={"prefLabel": "No uuid"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_PAYLOAD"

    def test_put_blank_uuid(self, client):
        response = client.put("/sections/%20", json={**PAYLOAD, "uuid": " "})

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_RECORD"

    def test_put_shared_identifier_conflict(self, client):
        client.put("/sections/12345", json=PAYLOAD)

        response = client.put(
            "/sections/67890",
            json={
                "uuid": "67890",
                "prefLabel": "Other",
                "alternativeIdentifiers": {"TME": ["TME_ID"]},
            },
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "CONSTRAINT_VIOLATION"

    def test_get_missing(self, client):
        assert client.get("/sections/nope").status_code == 404

    def test_delete(self, client):
        client.put("/sections/12345", json=PAYLOAD)

        response = client.delete("/sections/12345")

        assert response.status_code == 204
        assert client.get("/sections/12345").status_code == 404
        assert client.delete("/sections/12345").status_code == 404

    def test_count(self, client):
        assert client.get("/sections/__count").json() == {"count": 0}

        client.put("/sections/12345", json=PAYLOAD)

        assert client.get("/sections/__count").json() == {"count": 1}

    def test_health(self, client):
        response = client.get("/__health")

        assert response.status_code == 200
        assert response.json() == {"healthy": True}

    def test_gtg(self, client):
        response = client.get("/__gtg")

        assert response.status_code == 200
        assert response.text == "OK"

    def test_probes_unavailable(self, data_dir):
        """Probes report 503 when the database cannot be opened."""
        blocker = os.path.join(data_dir, "blocker")
        with open(blocker, "w") as f:
            f.write("not a directory")
        service = SectionsService(SqliteGraphStore(os.path.join(blocker, "graph.db")))
        client = TestClient(create_http_app(service))

        assert client.get("/__health").status_code == 503
        assert client.get("/__gtg").status_code == 503

        response = client.get("/sections/12345")
        assert response.status_code == 503
        assert response.json()["error_code"] == "STORE_UNAVAILABLE"
