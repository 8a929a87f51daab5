import unittest

from sidey.db import (
    CollectionRecord,
    CommentRecord,
    ImageKind,
    ImageRecord,
    MediaRecord,
    PostRecord,
    PostgresDbClient,
    ProfileRecord,
    SettingRecord,
    SiteRecord,
    UserRecord,
)
from sidey.errors import Conflict


def account(site_name, email=None):
    user = UserRecord(
        id=f"user-{site_name}",
        email=email or f"{site_name}@example.com",
        password_hash="hash",
        site_name=site_name,
    )
    site = SiteRecord(id=site_name, owner_id=user.id, owner_email=user.email)
    return user, site, ProfileRecord(site_id=site_name)


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")
        self.db.create_account(*account("alice"))

    def test_create_account_and_lookups(self):
        user = self.db.get_user_by_email("ALICE@example.com")
        self.assertEqual(user.id, "user-alice")
        self.assertEqual(self.db.get_user_by_site_name("alice").id, "user-alice")
        self.assertEqual(self.db.get_site("alice").owner_id, "user-alice")
        self.assertIsNotNone(self.db.get_profile("alice"))

    def test_create_account_is_atomic(self):
        user, site, profile = account("bob", email="alice@example.com")
        with self.assertRaises(Conflict):
            self.db.create_account(user, site, profile)
        self.assertIsNone(self.db.get_site("bob"))
        self.assertIsNone(self.db.get_profile("bob"))

    def test_update_rejects_unknown_columns(self):
        with self.assertRaises(ValueError):
            self.db.update_user("user-alice", {"is_admin": True})
        self.assertFalse(self.db.get_user("user-alice").is_admin)

    def test_domain_lookup(self):
        self.db.update_site("alice", {"custom_domain": "www.alice.com"})
        site = self.db.find_site_by_domain(["alice.com", "www.alice.com"])
        self.assertEqual(site.id, "alice")
        self.assertEqual([s.id for s in self.db.list_sites_with_domain()], ["alice"])

    def test_profile_upsert_keeps_resume(self):
        self.db.upsert_profile(
            ProfileRecord(site_id="alice", about="hi", resume_url="https://a/cv.pdf")
        )
        created_at = self.db.get_profile("alice").created_at
        self.db.upsert_profile(ProfileRecord(site_id="alice", about="updated"))
        profile = self.db.get_profile("alice")
        self.assertEqual(profile.about, "updated")
        self.assertEqual(profile.resume_url, "https://a/cv.pdf")
        self.assertEqual(profile.created_at, created_at)

    def test_collections_media_and_cascade(self):
        collection = CollectionRecord(
            id="c1", site_id="alice", title="Reel", software=["Maya"]
        )
        self.db.create_collection(
            collection, [MediaRecord(id="m1", collection_id="c1", url="u1")]
        )
        added = self.db.append_media(
            "c1",
            [
                MediaRecord(id="m2", collection_id="c1", url="u2", type="video"),
                MediaRecord(id="m3", collection_id="c1", url="u3"),
            ],
        )
        self.assertEqual([m.order_index for m in added], [1, 2])
        self.assertEqual([m.id for m in self.db.list_media("c1")], ["m1", "m2", "m3"])
        self.assertEqual(self.db.get_collection("c1").software, ["Maya"])

        self.db.delete_collection("c1")
        self.assertIsNone(self.db.get_collection("c1"))
        self.assertEqual(self.db.list_media("c1"), [])

    def test_append_media_to_empty_collection_starts_at_zero(self):
        self.db.create_collection(CollectionRecord(id="c1", site_id="alice", title="T"), [])
        added = self.db.append_media("c1", [MediaRecord(id="m1", collection_id="c1", url="u")])
        self.assertEqual(added[0].order_index, 0)

    def test_global_collection_sort(self):
        self.db.create_collection(
            CollectionRecord(id="a", site_id="alice", title="Zed",
                             created_at="2024-01-01T00:00:00.000000Z"), []
        )
        self.db.create_collection(
            CollectionRecord(id="b", site_id="bob", title="Ann",
                             created_at="2024-02-01T00:00:00.000000Z"), []
        )
        newest = self.db.list_collections(None, order_by="created_at", descending=True)
        self.assertEqual([c.id for c in newest], ["b", "a"])
        by_title = self.db.list_collections(None, order_by="title", descending=False)
        self.assertEqual([c.id for c in by_title], ["b", "a"])
        with self.assertRaises(ValueError):
            self.db.list_collections(None, order_by="site_id")

    def test_images_are_kept_per_kind(self):
        self.db.create_image(ImageKind.GALLERY, ImageRecord(id="g1", site_id="alice", url="u"))
        self.db.create_image(ImageKind.BTS, ImageRecord(id="b1", site_id="alice", url="u"))
        self.assertEqual([i.id for i in self.db.list_images(ImageKind.GALLERY, "alice")], ["g1"])
        self.assertIsNone(self.db.get_image(ImageKind.BTS, "g1"))
        self.db.update_image(ImageKind.BTS, "b1", {"filename": "f.jpg", "order_index": 3})
        image = self.db.get_image(ImageKind.BTS, "b1")
        self.assertEqual((image.filename, image.order_index), ("f.jpg", 3))

    def test_posts_published_filter(self):
        self.db.create_post(PostRecord(id="p1", site_id="alice", title="A", content="", slug="a"))
        self.db.create_post(
            PostRecord(id="p2", site_id="alice", title="B", content="", slug="b", published=False)
        )
        self.assertEqual([p.id for p in self.db.list_posts("alice", published_only=True)], ["p1"])
        self.assertEqual(len(self.db.list_posts("alice")), 2)

    def test_comments_and_settings(self):
        self.db.create_comment(
            CommentRecord(id="k1", author_id="u", author_name="n", text="t", content_id="p1")
        )
        self.assertEqual([c.id for c in self.db.list_comments(content_id="p1")], ["k1"])
        self.assertEqual(self.db.list_comments(collection_id="c1"), [])

        self.db.create_setting(SettingRecord(id="s1", site_id="alice", key="hero"))
        self.db.update_setting("s1", {"value": "v"})
        self.assertEqual(self.db.list_settings("alice", "hero")[0].value, "v")
        self.db.delete_setting("s1")
        self.assertIsNone(self.db.get_setting("s1"))


if __name__ == "__main__":
    unittest.main()
