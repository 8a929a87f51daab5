"""
Relational store abstraction for Postgres and an in-memory test implementation.

Every tenant-scoped row carries the owning ``site_id`` (or reaches it through
its collection). The store does not enforce ownership; callers check it
before mutating.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Protocol

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from sidey.errors import Conflict


def utc_now() -> str:
    """ISO-8601 UTC timestamp with fixed width so string order is time order."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ImageKind(str, enum.Enum):
    """The two flat per-site media lists."""

    GALLERY = "gallery"
    BTS = "bts"


MEDIA_TYPES = ("image", "video", "model")
SOCIAL_FIELDS = ("instagram", "linkedin", "imdb", "artstation")
COLLECTION_SORT_FIELDS = ("created_at", "updated_at", "title")

# Columns each update method accepts. Anything else is a programming error.
USER_UPDATABLE = frozenset({"full_name", "custom_domain", "password_hash"})
SITE_UPDATABLE = frozenset({"template", "custom_domain", "status"})
COLLECTION_UPDATABLE = frozenset(
    {"title", "description", "software", "equipment", "order_index"}
)
IMAGE_UPDATABLE = frozenset({"filename", "order_index"})
POST_UPDATABLE = frozenset({"title", "content", "slug", "published"})
SETTING_UPDATABLE = frozenset({"url", "value"})


def _checked_patch(patch: dict, allowed: frozenset) -> dict:
    unknown = set(patch) - allowed
    if unknown:
        raise ValueError(f"Columns not updatable: {sorted(unknown)}")
    return dict(patch)


@dataclass
class UserRecord:
    id: str
    email: str
    password_hash: str
    site_name: str
    full_name: Optional[str] = None
    is_pro: bool = False
    is_admin: bool = False
    custom_domain: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "siteName": self.site_name,
            "fullName": self.full_name,
            "isPro": self.is_pro,
            "isAdmin": self.is_admin,
            "customDomain": self.custom_domain,
            "createdAt": self.created_at,
        }

    def as_public_dict(self) -> dict:
        return {"id": self.id, "siteName": self.site_name, "isPro": self.is_pro}


@dataclass
class SiteRecord:
    id: str
    owner_id: str
    owner_email: str
    template: Optional[str] = None
    custom_domain: Optional[str] = None
    status: str = "active"
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def as_dict(self, include_owner_email: bool = True) -> dict:
        data = {
            "id": self.id,
            "ownerId": self.owner_id,
            "template": self.template,
            "customDomain": self.custom_domain,
            "status": self.status,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if include_owner_email:
            data["ownerEmail"] = self.owner_email
        return data


@dataclass
class ProfileRecord:
    site_id: str
    full_name: Optional[str] = None
    about: Optional[str] = None
    resume_url: Optional[str] = None
    instagram: Optional[str] = None
    linkedin: Optional[str] = None
    imdb: Optional[str] = None
    artstation: Optional[str] = None
    show_instagram: bool = False
    show_linkedin: bool = False
    show_imdb: bool = False
    show_artstation: bool = False
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def visible_social(self, name: str) -> Optional[str]:
        return getattr(self, name) if getattr(self, f"show_{name}") else None

    def as_dict(self, hide_invisible: bool = False) -> dict:
        data = {
            "siteId": self.site_id,
            "fullName": self.full_name,
            "about": self.about,
            "resumeUrl": self.resume_url,
            "showInstagram": self.show_instagram,
            "showLinkedin": self.show_linkedin,
            "showImdb": self.show_imdb,
            "showArtstation": self.show_artstation,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        for name in SOCIAL_FIELDS:
            data[name] = (
                self.visible_social(name) if hide_invisible else getattr(self, name)
            )
        return data


@dataclass
class MediaRecord:
    id: str
    collection_id: str
    url: str
    type: str = "image"
    filename: Optional[str] = None
    order_index: int = 0
    created_at: str = field(default_factory=utc_now)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "collectionId": self.collection_id,
            "url": self.url,
            "type": self.type,
            "filename": self.filename,
            "orderIndex": self.order_index,
            "createdAt": self.created_at,
        }


@dataclass
class CollectionRecord:
    id: str
    site_id: str
    title: str
    description: Optional[str] = None
    software: list[str] = field(default_factory=list)
    equipment: list[str] = field(default_factory=list)
    order_index: int = 0
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "siteId": self.site_id,
            "title": self.title,
            "description": self.description,
            "software": list(self.software or []),
            "equipment": list(self.equipment or []),
            "orderIndex": self.order_index,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class ImageRecord:
    """Row shape shared by gallery and behind-the-scenes images."""

    id: str
    site_id: str
    url: str
    filename: Optional[str] = None
    type: Optional[str] = "image"
    order_index: int = 0
    created_at: str = field(default_factory=utc_now)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "siteId": self.site_id,
            "url": self.url,
            "filename": self.filename,
            "type": self.type,
            "orderIndex": self.order_index,
            "createdAt": self.created_at,
        }


@dataclass
class PostRecord:
    id: str
    site_id: str
    title: str
    content: str
    slug: str
    published: bool = True
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "siteId": self.site_id,
            "title": self.title,
            "content": self.content,
            "slug": self.slug,
            "published": self.published,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class CommentRecord:
    id: str
    author_id: str
    author_name: str
    text: str
    collection_id: Optional[str] = None
    content_id: Optional[str] = None
    created_at: str = field(default_factory=utc_now)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "collectionId": self.collection_id,
            "contentId": self.content_id,
            "authorId": self.author_id,
            "authorName": self.author_name,
            "text": self.text,
            "createdAt": self.created_at,
        }


@dataclass
class SettingRecord:
    id: str
    site_id: str
    key: str
    url: Optional[str] = None
    value: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "siteId": self.site_id,
            "key": self.key,
            "url": self.url,
            "value": self.value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class DbClient(Protocol):
    """Interface for relational store access."""

    # Accounts
    def create_account(
        self, user: UserRecord, site: SiteRecord, profile: ProfileRecord
    ) -> None:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    def get_user_by_site_name(self, site_name: str) -> Optional[UserRecord]:
        ...

    def update_user(self, user_id: str, patch: dict) -> None:
        ...

    # Sites
    def get_site(self, site_id: str) -> Optional[SiteRecord]:
        ...

    def find_site_by_domain(self, domains: Iterable[str]) -> Optional[SiteRecord]:
        ...

    def list_sites_with_domain(self) -> list[SiteRecord]:
        ...

    def update_site(self, site_id: str, patch: dict) -> None:
        ...

    # Profiles
    def get_profile(self, site_id: str) -> Optional[ProfileRecord]:
        ...

    def upsert_profile(self, profile: ProfileRecord) -> None:
        ...

    # Collections and their media
    def list_collections(
        self,
        site_id: Optional[str] = None,
        *,
        order_by: str = "created_at",
        descending: bool = True,
        limit: int = 50,
    ) -> list[CollectionRecord]:
        ...

    def get_collection(self, collection_id: str) -> Optional[CollectionRecord]:
        ...

    def create_collection(
        self, collection: CollectionRecord, media: list[MediaRecord]
    ) -> None:
        ...

    def update_collection(self, collection_id: str, patch: dict) -> None:
        ...

    def delete_collection(self, collection_id: str) -> None:
        ...

    def list_media(self, collection_id: str) -> list[MediaRecord]:
        ...

    def get_media(self, media_id: str) -> Optional[MediaRecord]:
        ...

    def append_media(
        self, collection_id: str, media: list[MediaRecord]
    ) -> list[MediaRecord]:
        ...

    def delete_media(self, media_id: str) -> None:
        ...

    # Gallery / BTS images
    def list_images(self, kind: ImageKind, site_id: str) -> list[ImageRecord]:
        ...

    def get_image(self, kind: ImageKind, image_id: str) -> Optional[ImageRecord]:
        ...

    def create_image(self, kind: ImageKind, image: ImageRecord) -> None:
        ...

    def update_image(self, kind: ImageKind, image_id: str, patch: dict) -> None:
        ...

    def delete_image(self, kind: ImageKind, image_id: str) -> None:
        ...

    # Posts
    def list_posts(
        self, site_id: str, *, published_only: bool = False
    ) -> list[PostRecord]:
        ...

    def get_post(self, post_id: str) -> Optional[PostRecord]:
        ...

    def create_post(self, post: PostRecord) -> None:
        ...

    def update_post(self, post_id: str, patch: dict) -> None:
        ...

    def delete_post(self, post_id: str) -> None:
        ...

    # Comments
    def list_comments(
        self,
        *,
        collection_id: Optional[str] = None,
        content_id: Optional[str] = None,
    ) -> list[CommentRecord]:
        ...

    def get_comment(self, comment_id: str) -> Optional[CommentRecord]:
        ...

    def create_comment(self, comment: CommentRecord) -> None:
        ...

    def delete_comment(self, comment_id: str) -> None:
        ...

    # Settings
    def list_settings(
        self, site_id: str, key: Optional[str] = None
    ) -> list[SettingRecord]:
        ...

    def get_setting(self, setting_id: str) -> Optional[SettingRecord]:
        ...

    def create_setting(self, setting: SettingRecord) -> None:
        ...

    def update_setting(self, setting_id: str, patch: dict) -> None:
        ...

    def delete_setting(self, setting_id: str) -> None:
        ...


def _by_order_then_newest(items: Iterable) -> list:
    """Sort by ``order_index`` ascending, ties broken by newest first."""
    newest_first = sorted(items, key=lambda item: item.created_at, reverse=True)
    return sorted(newest_first, key=lambda item: item.order_index)


def _apply(record, patch: dict, touch: bool = True):
    if touch and "updated_at" in {f.name for f in fields(record)}:
        patch = {**patch, "updated_at": utc_now()}
    return replace(record, **patch)


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.sites: Dict[str, SiteRecord] = {}
        self.profiles: Dict[str, ProfileRecord] = {}
        self.collections: Dict[str, CollectionRecord] = {}
        self.media: Dict[str, MediaRecord] = {}
        self.images: Dict[ImageKind, Dict[str, ImageRecord]] = {
            kind: {} for kind in ImageKind
        }
        self.posts: Dict[str, PostRecord] = {}
        self.comments: Dict[str, CommentRecord] = {}
        self.settings: Dict[str, SettingRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.__init__()

    def create_account(
        self, user: UserRecord, site: SiteRecord, profile: ProfileRecord
    ) -> None:
        if self.get_user_by_email(user.email) is not None:
            raise Conflict("Email already registered")
        if site.id in self.sites or self.get_user_by_site_name(user.site_name):
            raise Conflict("Site name already taken")
        self.users[user.id] = user
        self.sites[site.id] = site
        self.profiles[profile.site_id] = profile

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        email = email.lower()
        return next((u for u in self.users.values() if u.email == email), None)

    def get_user_by_site_name(self, site_name: str) -> Optional[UserRecord]:
        return next(
            (u for u in self.users.values() if u.site_name == site_name), None
        )

    def update_user(self, user_id: str, patch: dict) -> None:
        patch = _checked_patch(patch, USER_UPDATABLE)
        user = self.users.get(user_id)
        if user:
            self.users[user_id] = _apply(user, patch)

    def get_site(self, site_id: str) -> Optional[SiteRecord]:
        return self.sites.get(site_id)

    def find_site_by_domain(self, domains: Iterable[str]) -> Optional[SiteRecord]:
        wanted = set(domains)
        return next(
            (s for s in self.sites.values() if s.custom_domain in wanted), None
        )

    def list_sites_with_domain(self) -> list[SiteRecord]:
        return [s for s in self.sites.values() if s.custom_domain]

    def update_site(self, site_id: str, patch: dict) -> None:
        patch = _checked_patch(patch, SITE_UPDATABLE)
        site = self.sites.get(site_id)
        if site:
            self.sites[site_id] = _apply(site, patch)

    def get_profile(self, site_id: str) -> Optional[ProfileRecord]:
        return self.profiles.get(site_id)

    def upsert_profile(self, profile: ProfileRecord) -> None:
        existing = self.profiles.get(profile.site_id)
        if existing:
            profile = replace(
                profile,
                resume_url=profile.resume_url or existing.resume_url,
                created_at=existing.created_at,
                updated_at=utc_now(),
            )
        self.profiles[profile.site_id] = profile

    def list_collections(
        self,
        site_id: Optional[str] = None,
        *,
        order_by: str = "created_at",
        descending: bool = True,
        limit: int = 50,
    ) -> list[CollectionRecord]:
        if site_id is not None:
            items = [c for c in self.collections.values() if c.site_id == site_id]
            return _by_order_then_newest(items)[:limit]
        if order_by not in COLLECTION_SORT_FIELDS:
            raise ValueError(f"Unsupported sort field: {order_by}")
        items = sorted(
            self.collections.values(),
            key=lambda c: getattr(c, order_by),
            reverse=descending,
        )
        return items[:limit]

    def get_collection(self, collection_id: str) -> Optional[CollectionRecord]:
        return self.collections.get(collection_id)

    def create_collection(
        self, collection: CollectionRecord, media: list[MediaRecord]
    ) -> None:
        self.collections[collection.id] = collection
        for item in media:
            self.media[item.id] = item

    def update_collection(self, collection_id: str, patch: dict) -> None:
        patch = _checked_patch(patch, COLLECTION_UPDATABLE)
        collection = self.collections.get(collection_id)
        if collection:
            self.collections[collection_id] = _apply(collection, patch)

    def delete_collection(self, collection_id: str) -> None:
        for media_id in [
            m.id for m in self.media.values() if m.collection_id == collection_id
        ]:
            del self.media[media_id]
        self.collections.pop(collection_id, None)

    def list_media(self, collection_id: str) -> list[MediaRecord]:
        items = [m for m in self.media.values() if m.collection_id == collection_id]
        return sorted(items, key=lambda m: m.order_index)

    def get_media(self, media_id: str) -> Optional[MediaRecord]:
        return self.media.get(media_id)

    def append_media(
        self, collection_id: str, media: list[MediaRecord]
    ) -> list[MediaRecord]:
        existing = [m.order_index for m in self.list_media(collection_id)]
        next_index = max(existing) + 1 if existing else 0
        added = []
        for offset, item in enumerate(media):
            item = replace(
                item, collection_id=collection_id, order_index=next_index + offset
            )
            self.media[item.id] = item
            added.append(item)
        return added

    def delete_media(self, media_id: str) -> None:
        self.media.pop(media_id, None)

    def list_images(self, kind: ImageKind, site_id: str) -> list[ImageRecord]:
        items = [i for i in self.images[kind].values() if i.site_id == site_id]
        return _by_order_then_newest(items)

    def get_image(self, kind: ImageKind, image_id: str) -> Optional[ImageRecord]:
        return self.images[kind].get(image_id)

    def create_image(self, kind: ImageKind, image: ImageRecord) -> None:
        self.images[kind][image.id] = image

    def update_image(self, kind: ImageKind, image_id: str, patch: dict) -> None:
        patch = _checked_patch(patch, IMAGE_UPDATABLE)
        image = self.images[kind].get(image_id)
        if image:
            self.images[kind][image_id] = _apply(image, patch)

    def delete_image(self, kind: ImageKind, image_id: str) -> None:
        self.images[kind].pop(image_id, None)

    def list_posts(
        self, site_id: str, *, published_only: bool = False
    ) -> list[PostRecord]:
        items = [
            p
            for p in self.posts.values()
            if p.site_id == site_id and (p.published or not published_only)
        ]
        return sorted(items, key=lambda p: p.created_at, reverse=True)

    def get_post(self, post_id: str) -> Optional[PostRecord]:
        return self.posts.get(post_id)

    def create_post(self, post: PostRecord) -> None:
        self.posts[post.id] = post

    def update_post(self, post_id: str, patch: dict) -> None:
        patch = _checked_patch(patch, POST_UPDATABLE)
        post = self.posts.get(post_id)
        if post:
            self.posts[post_id] = _apply(post, patch)

    def delete_post(self, post_id: str) -> None:
        self.posts.pop(post_id, None)

    def list_comments(
        self,
        *,
        collection_id: Optional[str] = None,
        content_id: Optional[str] = None,
    ) -> list[CommentRecord]:
        if collection_id is not None:
            items = [
                c for c in self.comments.values() if c.collection_id == collection_id
            ]
        else:
            items = [c for c in self.comments.values() if c.content_id == content_id]
        return sorted(items, key=lambda c: c.created_at, reverse=True)

    def get_comment(self, comment_id: str) -> Optional[CommentRecord]:
        return self.comments.get(comment_id)

    def create_comment(self, comment: CommentRecord) -> None:
        self.comments[comment.id] = comment

    def delete_comment(self, comment_id: str) -> None:
        self.comments.pop(comment_id, None)

    def list_settings(
        self, site_id: str, key: Optional[str] = None
    ) -> list[SettingRecord]:
        items = [
            s
            for s in self.settings.values()
            if s.site_id == site_id and (key is None or s.key == key)
        ]
        return sorted(items, key=lambda s: s.created_at)

    def get_setting(self, setting_id: str) -> Optional[SettingRecord]:
        return self.settings.get(setting_id)

    def create_setting(self, setting: SettingRecord) -> None:
        self.settings[setting.id] = setting

    def update_setting(self, setting_id: str, patch: dict) -> None:
        patch = _checked_patch(patch, SETTING_UPDATABLE)
        setting = self.settings.get(setting_id)
        if setting:
            self.settings[setting_id] = _apply(setting, patch)

    def delete_setting(self, setting_id: str) -> None:
        self.settings.pop(setting_id, None)


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Each method runs in its own session. Ownership checks done by callers are
    not atomic with the write that follows them; concurrent updates to the
    same row are last-write-wins.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        engine_kwargs = {"future": True, "pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            # A single shared connection keeps ":memory:" databases alive.
            from sqlalchemy.pool import StaticPool

            engine_kwargs.update(
                connect_args={"check_same_thread": False}, poolclass=StaticPool
            )
        else:
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _get(self, row_cls, key) -> Optional[object]:
        with self.Session() as session:
            row = session.get(row_cls, key)
            return row.to_record() if row else None

    def _first(self, stmt) -> Optional[object]:
        with self.Session() as session:
            row = session.execute(stmt.limit(1)).scalars().first()
            return row.to_record() if row else None

    def _all(self, stmt) -> list:
        with self.Session() as session:
            return [row.to_record() for row in session.execute(stmt).scalars()]

    def _add(self, *rows) -> None:
        with self.Session() as session:
            session.add_all(rows)
            session.commit()

    def _update(self, row_cls, key, patch: dict, touch: bool = True) -> None:
        with self.Session() as session:
            row = session.get(row_cls, key)
            if not row:
                return
            for column, value in patch.items():
                setattr(row, column, value)
            if touch:
                row.updated_at = utc_now()
            session.commit()

    def _delete(self, row_cls, key) -> None:
        with self.Session() as session:
            row = session.get(row_cls, key)
            if row:
                session.delete(row)
                session.commit()

    def create_account(
        self, user: UserRecord, site: SiteRecord, profile: ProfileRecord
    ) -> None:
        # One transaction: either all three rows exist or none do.
        with self.Session() as session:
            session.add_all(
                [
                    UserRow.from_record(user),
                    SiteRow.from_record(site),
                    ProfileRow.from_record(profile),
                ]
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise Conflict("Email or site name already taken") from exc

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self._get(UserRow, user_id)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        return self._first(select(UserRow).where(UserRow.email == email.lower()))

    def get_user_by_site_name(self, site_name: str) -> Optional[UserRecord]:
        return self._first(select(UserRow).where(UserRow.site_name == site_name))

    def update_user(self, user_id: str, patch: dict) -> None:
        self._update(UserRow, user_id, _checked_patch(patch, USER_UPDATABLE))

    def get_site(self, site_id: str) -> Optional[SiteRecord]:
        return self._get(SiteRow, site_id)

    def find_site_by_domain(self, domains: Iterable[str]) -> Optional[SiteRecord]:
        return self._first(
            select(SiteRow).where(SiteRow.custom_domain.in_(list(domains)))
        )

    def list_sites_with_domain(self) -> list[SiteRecord]:
        return self._all(select(SiteRow).where(SiteRow.custom_domain.is_not(None)))

    def update_site(self, site_id: str, patch: dict) -> None:
        self._update(SiteRow, site_id, _checked_patch(patch, SITE_UPDATABLE))

    def get_profile(self, site_id: str) -> Optional[ProfileRecord]:
        return self._get(ProfileRow, site_id)

    def upsert_profile(self, profile: ProfileRecord) -> None:
        with self.Session() as session:
            row = session.get(ProfileRow, profile.site_id)
            if row is None:
                session.add(ProfileRow.from_record(profile))
            else:
                resume_url = profile.resume_url or row.resume_url
                for f in fields(profile):
                    if f.name not in ("site_id", "created_at"):
                        setattr(row, f.name, getattr(profile, f.name))
                row.resume_url = resume_url
                row.updated_at = utc_now()
            session.commit()

    def list_collections(
        self,
        site_id: Optional[str] = None,
        *,
        order_by: str = "created_at",
        descending: bool = True,
        limit: int = 50,
    ) -> list[CollectionRecord]:
        stmt = select(CollectionRow)
        if site_id is not None:
            stmt = stmt.where(CollectionRow.site_id == site_id).order_by(
                CollectionRow.order_index.asc(), CollectionRow.created_at.desc()
            )
        else:
            if order_by not in COLLECTION_SORT_FIELDS:
                raise ValueError(f"Unsupported sort field: {order_by}")
            column = getattr(CollectionRow, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        return self._all(stmt.limit(limit))

    def get_collection(self, collection_id: str) -> Optional[CollectionRecord]:
        return self._get(CollectionRow, collection_id)

    def create_collection(
        self, collection: CollectionRecord, media: list[MediaRecord]
    ) -> None:
        self._add(
            CollectionRow.from_record(collection),
            *[MediaRow.from_record(item) for item in media],
        )

    def update_collection(self, collection_id: str, patch: dict) -> None:
        self._update(
            CollectionRow, collection_id, _checked_patch(patch, COLLECTION_UPDATABLE)
        )

    def delete_collection(self, collection_id: str) -> None:
        with self.Session() as session:
            session.execute(
                delete(MediaRow).where(MediaRow.collection_id == collection_id)
            )
            session.execute(
                delete(CollectionRow).where(CollectionRow.id == collection_id)
            )
            session.commit()

    def list_media(self, collection_id: str) -> list[MediaRecord]:
        return self._all(
            select(MediaRow)
            .where(MediaRow.collection_id == collection_id)
            .order_by(MediaRow.order_index.asc())
        )

    def get_media(self, media_id: str) -> Optional[MediaRecord]:
        return self._get(MediaRow, media_id)

    def append_media(
        self, collection_id: str, media: list[MediaRecord]
    ) -> list[MediaRecord]:
        with self.Session() as session:
            current_max = session.execute(
                select(func.max(MediaRow.order_index)).where(
                    MediaRow.collection_id == collection_id
                )
            ).scalar()
            next_index = 0 if current_max is None else current_max + 1
            added = [
                replace(
                    item, collection_id=collection_id, order_index=next_index + offset
                )
                for offset, item in enumerate(media)
            ]
            session.add_all([MediaRow.from_record(item) for item in added])
            session.commit()
            return added

    def delete_media(self, media_id: str) -> None:
        self._delete(MediaRow, media_id)

    def list_images(self, kind: ImageKind, site_id: str) -> list[ImageRecord]:
        row_cls = IMAGE_ROWS[kind]
        return self._all(
            select(row_cls)
            .where(row_cls.site_id == site_id)
            .order_by(row_cls.order_index.asc(), row_cls.created_at.desc())
        )

    def get_image(self, kind: ImageKind, image_id: str) -> Optional[ImageRecord]:
        return self._get(IMAGE_ROWS[kind], image_id)

    def create_image(self, kind: ImageKind, image: ImageRecord) -> None:
        self._add(IMAGE_ROWS[kind].from_record(image))

    def update_image(self, kind: ImageKind, image_id: str, patch: dict) -> None:
        self._update(
            IMAGE_ROWS[kind],
            image_id,
            _checked_patch(patch, IMAGE_UPDATABLE),
            touch=False,
        )

    def delete_image(self, kind: ImageKind, image_id: str) -> None:
        self._delete(IMAGE_ROWS[kind], image_id)

    def list_posts(
        self, site_id: str, *, published_only: bool = False
    ) -> list[PostRecord]:
        stmt = select(PostRow).where(PostRow.site_id == site_id)
        if published_only:
            stmt = stmt.where(PostRow.published.is_(True))
        return self._all(stmt.order_by(PostRow.created_at.desc()))

    def get_post(self, post_id: str) -> Optional[PostRecord]:
        return self._get(PostRow, post_id)

    def create_post(self, post: PostRecord) -> None:
        self._add(PostRow.from_record(post))

    def update_post(self, post_id: str, patch: dict) -> None:
        self._update(PostRow, post_id, _checked_patch(patch, POST_UPDATABLE))

    def delete_post(self, post_id: str) -> None:
        self._delete(PostRow, post_id)

    def list_comments(
        self,
        *,
        collection_id: Optional[str] = None,
        content_id: Optional[str] = None,
    ) -> list[CommentRecord]:
        stmt = select(CommentRow)
        if collection_id is not None:
            stmt = stmt.where(CommentRow.collection_id == collection_id)
        else:
            stmt = stmt.where(CommentRow.content_id == content_id)
        return self._all(stmt.order_by(CommentRow.created_at.desc()))

    def get_comment(self, comment_id: str) -> Optional[CommentRecord]:
        return self._get(CommentRow, comment_id)

    def create_comment(self, comment: CommentRecord) -> None:
        self._add(CommentRow.from_record(comment))

    def delete_comment(self, comment_id: str) -> None:
        self._delete(CommentRow, comment_id)

    def list_settings(
        self, site_id: str, key: Optional[str] = None
    ) -> list[SettingRecord]:
        stmt = select(SettingRow).where(SettingRow.site_id == site_id)
        if key is not None:
            stmt = stmt.where(SettingRow.key == key)
        return self._all(stmt.order_by(SettingRow.created_at.asc()))

    def get_setting(self, setting_id: str) -> Optional[SettingRecord]:
        return self._get(SettingRow, setting_id)

    def create_setting(self, setting: SettingRecord) -> None:
        self._add(SettingRow.from_record(setting))

    def update_setting(self, setting_id: str, patch: dict) -> None:
        self._update(
            SettingRow, setting_id, _checked_patch(patch, SETTING_UPDATABLE)
        )

    def delete_setting(self, setting_id: str) -> None:
        self._delete(SettingRow, setting_id)


Base = declarative_base()


class _RecordMixin:
    """Maps a row to and from the dataclass record with the same field names."""

    record_cls = None

    @classmethod
    def from_record(cls, record):
        return cls(**{f.name: getattr(record, f.name) for f in fields(record)})

    def to_record(self):
        return self.record_cls(
            **{f.name: getattr(self, f.name) for f in fields(self.record_cls)}
        )


class UserRow(_RecordMixin, Base):
    __tablename__ = "users"
    record_cls = UserRecord

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    site_name = Column(String, nullable=False, unique=True, index=True)
    full_name = Column(String, nullable=True)
    is_pro = Column(Boolean, nullable=False, default=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    custom_domain = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class SiteRow(_RecordMixin, Base):
    __tablename__ = "sites"
    record_cls = SiteRecord

    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, unique=True, index=True)
    owner_email = Column(String, nullable=False)
    template = Column(String, nullable=True)
    custom_domain = Column(String, nullable=True, index=True)
    status = Column(String, nullable=False, default="active")
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class ProfileRow(_RecordMixin, Base):
    __tablename__ = "profiles"
    record_cls = ProfileRecord

    site_id = Column(String, primary_key=True)
    full_name = Column(String, nullable=True)
    about = Column(Text, nullable=True)
    resume_url = Column(String, nullable=True)
    instagram = Column(String, nullable=True)
    linkedin = Column(String, nullable=True)
    imdb = Column(String, nullable=True)
    artstation = Column(String, nullable=True)
    show_instagram = Column(Boolean, nullable=False, default=False)
    show_linkedin = Column(Boolean, nullable=False, default=False)
    show_imdb = Column(Boolean, nullable=False, default=False)
    show_artstation = Column(Boolean, nullable=False, default=False)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class CollectionRow(_RecordMixin, Base):
    __tablename__ = "collections"
    record_cls = CollectionRecord

    id = Column(String, primary_key=True)
    site_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    software = Column(JSON, nullable=False, default=list)
    equipment = Column(JSON, nullable=False, default=list)
    order_index = Column(Integer, nullable=False, default=0)
    created_at = Column(String, nullable=False, index=True)
    updated_at = Column(String, nullable=False)


class MediaRow(_RecordMixin, Base):
    __tablename__ = "collection_media"
    record_cls = MediaRecord

    id = Column(String, primary_key=True)
    collection_id = Column(String, nullable=False, index=True)
    url = Column(String, nullable=False)
    type = Column(String, nullable=False, default="image")
    filename = Column(String, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    created_at = Column(String, nullable=False)


class _ImageColumns(_RecordMixin):
    record_cls = ImageRecord

    id = Column(String, primary_key=True)
    site_id = Column(String, nullable=False, index=True)
    url = Column(String, nullable=False)
    filename = Column(String, nullable=True)
    type = Column(String, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    created_at = Column(String, nullable=False)


class GalleryImageRow(_ImageColumns, Base):
    __tablename__ = "gallery_images"


class BtsImageRow(_ImageColumns, Base):
    __tablename__ = "bts_images"


IMAGE_ROWS = {ImageKind.GALLERY: GalleryImageRow, ImageKind.BTS: BtsImageRow}


class PostRow(_RecordMixin, Base):
    __tablename__ = "posts"
    record_cls = PostRecord

    id = Column(String, primary_key=True)
    site_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False, default="")
    slug = Column(String, nullable=False)
    published = Column(Boolean, nullable=False, default=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class CommentRow(_RecordMixin, Base):
    __tablename__ = "comments"
    record_cls = CommentRecord

    id = Column(String, primary_key=True)
    collection_id = Column(String, nullable=True, index=True)
    content_id = Column(String, nullable=True, index=True)
    author_id = Column(String, nullable=False)
    author_name = Column(String, nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(String, nullable=False)


class SettingRow(_RecordMixin, Base):
    __tablename__ = "settings"
    record_cls = SettingRecord

    id = Column(String, primary_key=True)
    site_id = Column(String, nullable=False, index=True)
    key = Column(String, nullable=False)
    url = Column(String, nullable=True)
    value = Column(Text, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
