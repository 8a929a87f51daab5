import io
import unittest

from fastapi.testclient import TestClient

from sidey.app import create_app
from sidey.config import Settings, get_settings
from sidey.db import InMemoryDbClient
from sidey.dependencies import get_db_client, get_storage_client
from sidey.storage import InMemoryStorageClient

TEST_SECRET = "test-secret-with-enough-length-for-hs256"


class ApiTestCase(unittest.TestCase):
    """Runs the app against fresh in-memory stores."""

    raise_server_exceptions = True

    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient(base_url="https://assets.test")
        self.settings = Settings(jwt_secret=TEST_SECRET)
        self.app = create_app()
        self.app.dependency_overrides[get_db_client] = lambda: self.db
        self.app.dependency_overrides[get_storage_client] = lambda: self.storage
        self.app.dependency_overrides[get_settings] = lambda: self.settings
        self.client = TestClient(
            self.app, raise_server_exceptions=self.raise_server_exceptions
        )

    def signup(self, site_name, email=None, password="secret123", full_name=None):
        response = self.client.post(
            "/api/auth/signup",
            json={
                "email": email or f"{site_name}@example.com",
                "password": password,
                "siteName": site_name,
                "fullName": full_name,
            },
        )
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def auth(self, session):
        return {"Authorization": f"Bearer {session['token']}"}

    def make_admin(self, session):
        user_id = session["user"]["id"]
        self.db.users[user_id].is_admin = True

    def make_pro(self, session):
        user_id = session["user"]["id"]
        self.db.users[user_id].is_pro = True

    def upload(self, session, content=b"data", filename="photo.jpg", **form):
        return self.client.post(
            "/api/storage/upload",
            headers=self.auth(session),
            files={"file": (filename, io.BytesIO(content), "image/jpeg")},
            data=form,
        )
