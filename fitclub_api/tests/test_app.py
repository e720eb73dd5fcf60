import unittest
from unittest.mock import MagicMock

from api_testing_utils import ApiTestCase
from fitclub_api.config import get_settings
from fitclub_api.dependencies import get_db_client


class ErrorEnvelopeTests(ApiTestCase):
    def test_unknown_resource_uses_error_envelope(self):
        response = self.client.get("/api/groups/missing")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Group not found"})

    def test_router_errors_use_error_envelope(self):
        response = self.client.get("/api/nowhere")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Not Found"})

        response = self.client.delete("/api/users")
        self.assertEqual(response.status_code, 405)
        self.assertEqual(response.json(), {"error": "Method Not Allowed"})

    def test_token_url_follows_api_prefix(self):
        schemes = self.client.get("/openapi.json").json()["components"]["securitySchemes"]
        token_url = schemes["OAuth2PasswordBearer"]["flows"]["password"]["tokenUrl"]
        self.assertEqual(token_url, f"{get_settings().api_prefix}/auth/login")

    def test_malformed_body_is_a_validation_error(self):
        response = self.client.post("/api/users", json={"age": "forty"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.json())

    def test_blank_ids_are_rejected_before_store_access(self):
        db = MagicMock()
        self.app.dependency_overrides[get_db_client] = lambda: db

        response = self.client.delete("/api/users/%20")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "User does not exist"})
        self.assertEqual(db.method_calls, [])

    def test_undefined_id_is_rejected(self):
        db = MagicMock()
        self.app.dependency_overrides[get_db_client] = lambda: db

        response = self.client.get("/api/groups/undefined")

        self.assertEqual(response.status_code, 400)
        db.get_group.assert_not_called()


if __name__ == "__main__":
    unittest.main()
