"""Shared fixtures for the API tests."""

import unittest

from fastapi.testclient import TestClient

from fitclub_api.app import create_app
from fitclub_api.db import InMemoryDbClient
from fitclub_api.dependencies import get_db_client, get_storage_client
from fitclub_api.storage import InMemoryStorageClient

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class ApiTestCase(unittest.TestCase):
    """Runs the app against fresh in-memory backends for every test."""

    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.app = create_app()
        self.app.dependency_overrides[get_db_client] = lambda: self.db
        self.app.dependency_overrides[get_storage_client] = lambda: self.storage
        self.client = TestClient(self.app)

    def create_user(self, name="Jane Doe", **overrides):
        payload = {
            "name": name,
            "age": 30,
            "sex": "woman",
            "height": {"value": 170, "unit": "cm"},
            "weight": {"value": 60, "unit": "kg"},
        }
        payload.update(overrides)
        response = self.client.post("/api/users", json=payload)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["user"]

    def create_group(self, name="Morning Runners", visibility="public", **fields):
        data = {"name": name, "visibility": visibility, **fields}
        response = self.client.post("/api/groups", data=data)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["group"]
