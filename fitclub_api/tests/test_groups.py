import unittest

from api_testing_utils import PNG_BYTES, ApiTestCase


class GroupRoutesTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.owner = self.create_user("Owner")
        self.member = self.create_user("Member")

    def test_create_group_with_photo(self):
        response = self.client.post(
            "/api/groups",
            data={
                "name": "Morning Runners",
                "visibility": "public",
                "ownerId": self.owner["_id"],
                "members": [self.member["_id"], self.member["_id"]],
            },
            files={"photo": ("group.png", PNG_BYTES, "image/png")},
        )
        self.assertEqual(response.status_code, 201, response.text)
        group = response.json()["group"]
        self.assertEqual(group["ownerId"], self.owner["_id"])
        self.assertEqual(group["members"], [self.owner["_id"], self.member["_id"]])
        self.assertTrue(group["photoUrl"].startswith(self.storage.base_url))
        self.assertEqual(len(self.storage.stored_objects), 1)

    def test_create_group_validates_input(self):
        response = self.client.post(
            "/api/groups", data={"name": "x", "visibility": "public"}
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/groups", data={"name": "Runners", "visibility": "secret"}
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/groups",
            data={"name": "Runners", "visibility": "public", "members": ["ghost"]},
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.db.groups, {})

    def test_public_and_joined_listings(self):
        public = self.create_group("Public", "public", ownerId=self.owner["_id"])
        private = self.create_group("Private", "private", members=[self.member["_id"]])

        groups = self.client.get("/api/groups").json()["groups"]
        self.assertEqual([g["_id"] for g in groups], [public["_id"]])

        joined = self.client.get(f"/api/groups/{self.member['_id']}/joined")
        self.assertEqual([g["_id"] for g in joined.json()["groups"]], [private["_id"]])

    def test_joined_groups_for_unknown_user(self):
        response = self.client.get("/api/groups/ghost/joined")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "User not found"})

    def test_group_members_are_basic_users(self):
        group = self.create_group(ownerId=self.owner["_id"], members=[self.member["_id"]])
        response = self.client.get(f"/api/groups/{group['_id']}/members")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            [u["name"] for u in response.json()["users"]], ["Owner", "Member"]
        )

    def test_add_member_is_idempotent(self):
        group = self.create_group()
        for _ in range(2):
            response = self.client.put(
                f"/api/groups/{group['_id']}/addMember",
                json={"userId": self.member["_id"]},
            )
            self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["group"]["members"], [self.member["_id"]])

    def test_add_unknown_member_is_not_found(self):
        group = self.create_group()
        response = self.client.put(
            f"/api/groups/{group['_id']}/addMember", json={"userId": "ghost"}
        )
        self.assertEqual(response.status_code, 404)
        response = self.client.put(
            f"/api/groups/{group['_id']}/addMember", json={"userId": ""}
        )
        self.assertEqual(response.status_code, 400)

    def test_remove_non_member_is_a_noop(self):
        group = self.create_group(ownerId=self.owner["_id"])
        response = self.client.put(
            f"/api/groups/{group['_id']}/removeMember",
            json={"userId": self.member["_id"]},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["group"]["members"], [self.owner["_id"]])

        response = self.client.put(
            f"/api/groups/{group['_id']}/removeMember",
            json={"userId": self.owner["_id"]},
        )
        self.assertEqual(response.json()["group"]["members"], [])

    def test_invitations(self):
        group = self.create_group(ownerId=self.owner["_id"])
        response = self.client.post(
            f"/api/groups/{group['_id']}/inviteMembers",
            json={"members": [self.owner["_id"], self.member["_id"], self.member["_id"]]},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["group"]["invited"], [self.member["_id"]])

        response = self.client.put(
            f"/api/groups/{group['_id']}/addMember", json={"userId": self.member["_id"]}
        )
        updated = response.json()["group"]
        self.assertEqual(updated["invited"], [])
        self.assertIn(self.member["_id"], updated["members"])

        response = self.client.post(
            f"/api/groups/{group['_id']}/inviteMembers", json={"members": ["ghost"]}
        )
        self.assertEqual(response.status_code, 404)

    def test_update_group_fields_and_photo(self):
        group = self.create_group()
        response = self.client.put(
            f"/api/groups/{group['_id']}",
            data={"name": "Evening Runners"},
            files={"photo": ("new.jpg", PNG_BYTES, "image/jpeg")},
        )
        self.assertEqual(response.status_code, 200, response.text)
        updated = response.json()["group"]
        self.assertEqual(updated["name"], "Evening Runners")
        self.assertEqual(updated["visibility"], "public")
        self.assertIsNotNone(updated["photoUrl"])

        response = self.client.put(
            f"/api/groups/{group['_id']}", data={"name": "Evening Runners"}
        )
        self.assertEqual(response.json()["group"]["photoUrl"], updated["photoUrl"])

        response = self.client.put(
            f"/api/groups/{group['_id']}",
            data={"clearPhoto": "true", "visibility": "private"},
        )
        cleared = response.json()["group"]
        self.assertIsNone(cleared["photoUrl"])
        self.assertEqual(cleared["visibility"], "private")

        response = self.client.put(
            f"/api/groups/{group['_id']}", data={"visibility": "hidden"}
        )
        self.assertEqual(response.status_code, 400)

    def test_delete_group(self):
        group = self.create_group()
        response = self.client.delete(f"/api/groups/{group['_id']}")
        self.assertEqual(response.json(), {"success": True})
        self.assertEqual(self.client.get(f"/api/groups/{group['_id']}").status_code, 404)
        self.assertEqual(self.client.delete(f"/api/groups/{group['_id']}").status_code, 404)


if __name__ == "__main__":
    unittest.main()
