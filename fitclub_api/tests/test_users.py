import unittest

from api_testing_utils import PNG_BYTES, ApiTestCase


class UserRoutesTests(ApiTestCase):
    def test_create_and_fetch_user(self):
        user = self.create_user()
        self.assertEqual(user["name"], "Jane Doe")
        self.assertEqual(user["height"], {"value": 170.0, "unit": "cm"})
        self.assertIsNone(user["avatarUrl"])

        fetched = self.client.get(f"/api/users/{user['_id']}")
        self.assertEqual(fetched.status_code, 200)
        self.assertEqual(fetched.json()["user"], user)

        basic = self.client.get(f"/api/users/{user['_id']}/basic")
        self.assertEqual(
            basic.json()["user"],
            {"_id": user["_id"], "name": "Jane Doe", "avatarUrl": None},
        )

    def test_list_users_returns_basic_projections(self):
        self.create_user("Jane Doe")
        self.create_user("John Roe", sex="man")
        response = self.client.get("/api/users")
        self.assertEqual(response.status_code, 200)
        users = response.json()["users"]
        self.assertEqual([u["name"] for u in users], ["Jane Doe", "John Roe"])
        self.assertEqual(set(users[0]), {"_id", "name", "avatarUrl"})

    def test_profile_rules_are_enforced_server_side(self):
        response = self.client.post(
            "/api/users", json={"name": "Jane", "age": 17, "sex": "woman"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(),
            {"error": "Invalid age: acceptable values are from 18 to 99 years-old"},
        )

        response = self.client.post(
            "/api/users",
            json={"name": "Jane", "age": 30, "sex": "woman", "height": {"value": 50}},
        )
        self.assertEqual(response.status_code, 400)

    def test_update_keeps_id_and_merges_fields(self):
        user = self.create_user()
        response = self.client.put(
            f"/api/users/{user['_id']}",
            json={"_id": "something-else", "name": "Jane Smith", "age": 31},
        )
        self.assertEqual(response.status_code, 200)
        updated = response.json()["user"]
        self.assertEqual(updated["_id"], user["_id"])
        self.assertEqual(updated["name"], "Jane Smith")
        self.assertEqual(updated["age"], 31)
        self.assertEqual(updated["sex"], "woman")

    def test_update_rejects_invalid_values(self):
        user = self.create_user()
        response = self.client.put(
            f"/api/users/{user['_id']}", json={"weight": {"value": 400}}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.db.get_user(user["_id"]).weight["value"], 60)

    def test_blank_measurement_counts_as_missing(self):
        user = self.create_user(
            height={"value": "", "unit": "cm"}, weight={"value": "", "unit": "kg"}
        )
        self.assertEqual(user["height"], {"value": None, "unit": "cm"})
        self.assertEqual(user["weight"], {"value": None, "unit": "kg"})

    def test_account_links_to_one_user(self):
        account = self.client.post(
            "/api/auth/register", json={"email": "a@b.com", "password": "pw123456"}
        ).json()["account"]
        first = self.create_user(accountId=account["_id"])
        self.assertEqual(first["accountId"], account["_id"])

        response = self.client.post(
            "/api/users",
            json={"name": "Other", "age": 30, "sex": "man", "accountId": account["_id"]},
        )
        self.assertEqual(response.status_code, 409)

        second = self.create_user("Other")
        response = self.client.put(
            f"/api/users/{second['_id']}", json={"accountId": account["_id"]}
        )
        self.assertEqual(response.status_code, 409)
        self.assertIsNone(self.db.get_user(second["_id"]).account_id)

        response = self.client.put(
            f"/api/users/{first['_id']}", json={"accountId": account["_id"]}
        )
        self.assertEqual(response.status_code, 200)

    def test_update_rejects_unknown_account(self):
        user = self.create_user()
        response = self.client.put(
            f"/api/users/{user['_id']}", json={"accountId": "ghost"}
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Account not found"})
        self.assertIsNone(self.db.get_user(user["_id"]).account_id)

    def test_missing_user_is_not_found(self):
        for path in ("/api/users/nope", "/api/users/nope/basic"):
            response = self.client.get(path)
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.json(), {"error": "User not found"})
        self.assertEqual(self.client.delete("/api/users/nope").status_code, 404)

    def test_delete_user_removes_memberships(self):
        owner = self.create_user("Owner")
        member = self.create_user("Member")
        group = self.create_group(ownerId=owner["_id"], members=[member["_id"]])

        response = self.client.delete(f"/api/users/{member['_id']}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True})
        self.assertEqual(self.client.get(f"/api/users/{member['_id']}").status_code, 404)
        self.assertEqual(self.db.get_group(group["_id"]).members, [owner["_id"]])

    def test_avatar_upload_persists_only_the_url(self):
        user = self.create_user()
        response = self.client.put(
            f"/api/users/{user['_id']}/avatar",
            files={"file": ("me.PNG", PNG_BYTES, "image/png")},
        )
        self.assertEqual(response.status_code, 200, response.text)
        avatar_url = response.json()["user"]["avatarUrl"]
        self.assertTrue(avatar_url.startswith(self.storage.base_url))

        path = avatar_url[len(self.storage.base_url) + 1 :]
        self.assertTrue(path.startswith(f"avatars/users/{user['_id']}/"))
        self.assertTrue(path.endswith(".png"))
        self.assertEqual(self.storage.get_bytes(path), PNG_BYTES)

    def test_avatar_upload_requires_an_image(self):
        user = self.create_user()
        response = self.client.put(
            f"/api/users/{user['_id']}/avatar",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.storage.stored_objects, {})

    def test_avatar_for_missing_user_does_not_upload(self):
        response = self.client.put(
            "/api/users/nope/avatar",
            files={"file": ("me.png", PNG_BYTES, "image/png")},
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.storage.stored_objects, {})


if __name__ == "__main__":
    unittest.main()
