import unittest

from sqlalchemy.exc import SQLAlchemyError

from sidey.db import InMemoryDbClient
from sidey.dependencies import get_db_client
from sidey.security import verify_token
from sidey.tests.support import TEST_SECRET, ApiTestCase


class BrokenDbClient(InMemoryDbClient):
    def get_site(self, site_id):
        raise SQLAlchemyError("connection refused to db.internal:5432")


class AuthApiTests(ApiTestCase):
    def test_signup_signin_and_me(self):
        session = self.signup("alice", full_name="Alice A")
        self.assertTrue(session["token"])
        self.assertEqual(session["user"]["siteName"], "alice")
        self.assertEqual(session["user"]["email"], "alice@example.com")
        self.assertFalse(session["user"]["isPro"])

        signin = self.client.post(
            "/api/auth/signin",
            json={"email": "ALICE@example.com", "password": "secret123"},
        )
        self.assertEqual(signin.status_code, 200)
        self.assertEqual(signin.json()["user"]["id"], session["user"]["id"])

        me = self.client.get("/api/auth/me", headers=self.auth(signin.json()))
        self.assertEqual(me.status_code, 200)
        user = me.json()["user"]
        self.assertEqual(user["userId"], session["user"]["id"])
        self.assertEqual(user["siteName"], "alice")
        self.assertEqual(user["fullName"], "Alice A")

    def test_token_claims_match_created_rows(self):
        session = self.signup("alice-films", email="alice@x.com", password="secret1")
        claims = verify_token(session["token"], TEST_SECRET)
        user = self.db.get_user_by_site_name("alice-films")
        self.assertEqual(claims["userId"], user.id)
        self.assertEqual(claims["siteName"], "alice-films")
        self.assertNotEqual(user.password_hash, "secret1")

    def test_signup_creates_site_and_profile(self):
        session = self.signup("alice")
        site = self.db.get_site("alice")
        self.assertEqual(site.owner_id, session["user"]["id"])
        self.assertIsNotNone(self.db.get_profile("alice"))

    def test_signup_rejects_duplicates(self):
        self.signup("alice")
        same_email = self.client.post(
            "/api/auth/signup",
            json={
                "email": "alice@example.com",
                "password": "secret123",
                "siteName": "other",
            },
        )
        self.assertEqual(same_email.status_code, 400)
        self.assertEqual(same_email.json(), {"error": "Email already registered"})

        same_site = self.client.post(
            "/api/auth/signup",
            json={
                "email": "bob@example.com",
                "password": "secret123",
                "siteName": "alice",
            },
        )
        self.assertEqual(same_site.status_code, 400)
        self.assertEqual(same_site.json(), {"error": "Site name already taken"})
        self.assertEqual(len(self.db.users), 1)

    def test_signup_validates_fields(self):
        cases = [
            {"email": "a@example.com", "siteName": "alice"},
            {"email": "a@example.com", "password": "123", "siteName": "alice"},
            {"email": "a@example.com", "password": "secret123", "siteName": "ab"},
            {"email": "a@example.com", "password": "secret123", "siteName": "a_b!"},
            {"email": "not-an-email", "password": "secret123", "siteName": "alice"},
        ]
        for body in cases:
            response = self.client.post("/api/auth/signup", json=body)
            self.assertEqual(response.status_code, 400, body)
            self.assertIn("error", response.json())
        self.assertEqual(self.db.users, {})

    def test_signin_wrong_password_and_unknown_email(self):
        self.signup("alice")
        for body in (
            {"email": "alice@example.com", "password": "wrong-password"},
            {"email": "nobody@example.com", "password": "secret123"},
        ):
            response = self.client.post("/api/auth/signin", json=body)
            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.json(), {"error": "Invalid email or password"})

    def test_me_requires_valid_token(self):
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)
        response = self.client.get(
            "/api/auth/me", headers={"Authorization": "Bearer not.a.token"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"error": "Authentication required"})

    def test_token_for_deleted_user_is_rejected(self):
        session = self.signup("alice")
        del self.db.users[session["user"]["id"]]
        response = self.client.get("/api/auth/me", headers=self.auth(session))
        self.assertEqual(response.status_code, 401)

    def test_update_password(self):
        session = self.signup("alice")
        wrong = self.client.post(
            "/api/auth/update-password",
            headers=self.auth(session),
            json={"currentPassword": "nope-nope", "newPassword": "newsecret"},
        )
        self.assertEqual(wrong.status_code, 401)

        ok = self.client.post(
            "/api/auth/update-password",
            headers=self.auth(session),
            json={"currentPassword": "secret123", "newPassword": "newsecret"},
        )
        self.assertEqual(ok.status_code, 200)
        signin = self.client.post(
            "/api/auth/signin",
            json={"email": "alice@example.com", "password": "newsecret"},
        )
        self.assertEqual(signin.status_code, 200)

    def test_reset_password_does_not_reveal_accounts(self):
        self.signup("alice")
        known = self.client.post(
            "/api/auth/reset-password", json={"email": "alice@example.com"}
        )
        unknown = self.client.post(
            "/api/auth/reset-password", json={"email": "ghost@example.com"}
        )
        self.assertEqual(known.status_code, 200)
        self.assertEqual(known.json(), unknown.json())

    def test_signout(self):
        response = self.client.post("/api/auth/signout")
        self.assertEqual(response.json(), {"success": True})


class PublicSiteApiTests(ApiTestCase):
    def test_new_site_has_empty_lists(self):
        self.signup("alice")
        response = self.client.get("/api/site/public/alice")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["site"]["id"], "alice")
        for key in ("collections", "gallery", "bts", "posts"):
            self.assertEqual(payload[key], [])

    def test_unknown_site_is_404(self):
        response = self.client.get("/api/site/public/nobody")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Site not found"})

    def test_public_site_hides_drafts_and_invisible_links(self):
        session = self.signup("alice")
        headers = self.auth(session)
        self.client.put(
            "/api/data/profiles",
            headers=headers,
            json={
                "fullName": "Alice",
                "instagram": "https://instagram.com/alice",
                "showInstagram": True,
                "linkedin": "https://linkedin.com/in/alice",
                "showLinkedin": False,
            },
        )
        self.client.post(
            "/api/data/posts", headers=headers, json={"title": "Live", "content": "x"}
        )
        self.client.post(
            "/api/data/posts",
            headers=headers,
            json={"title": "Draft", "content": "y", "published": False},
        )
        payload = self.client.get("/api/site/public/alice").json()
        self.assertEqual(payload["profile"]["instagram"], "https://instagram.com/alice")
        self.assertIsNone(payload["profile"]["linkedin"])
        self.assertEqual([p["title"] for p in payload["posts"]], ["Live"])

    def test_lookup_by_domain(self):
        session = self.signup("alice", full_name="Alice A")
        response = self.client.put(
            "/api/data/sites/alice",
            headers=self.auth(session),
            json={"customDomain": "https://WWW.Alice.com/"},
        )
        self.assertEqual(response.status_code, 200)

        for domain in ("alice.com", "www.alice.com", "ALICE.COM"):
            found = self.client.get("/api/site/by-domain", params={"domain": domain})
            self.assertEqual(found.status_code, 200, domain)
            self.assertEqual(found.json()["siteId"], "alice")
            self.assertEqual(found.json()["ownerName"], "Alice A")

        self.assertEqual(
            self.client.get("/api/site/by-domain").status_code, 400
        )
        self.assertEqual(
            self.client.get(
                "/api/site/by-domain", params={"domain": "other.com"}
            ).status_code,
            404,
        )
        sites = self.client.get("/api/site/all").json()["sites"]
        self.assertEqual([s["id"] for s in sites], ["alice"])


class AppBehaviourTests(ApiTestCase):
    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_cors_preflight(self):
        response = self.client.options(
            "/api/data/collections",
            headers={
                "Origin": "https://alice.example",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Authorization",
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["access-control-allow-origin"], "*")

    def test_unknown_route_uses_error_shape(self):
        response = self.client.get("/api/nope")
        self.assertEqual(response.status_code, 404)
        self.assertIn("error", response.json())

    def test_malformed_json_is_400(self):
        response = self.client.post(
            "/api/auth/signin",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.json())

    def test_store_failure_is_generic_500(self):
        self.app.dependency_overrides[get_db_client] = lambda: BrokenDbClient()
        with self.assertLogs("sidey.app", level="ERROR"):
            response = self.client.get("/api/site/public/alice")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Internal Server Error"})
        self.assertNotIn("db.internal", response.text)


if __name__ == "__main__":
    unittest.main()
