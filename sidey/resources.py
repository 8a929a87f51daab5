"""
Tenant-scoped resource handlers behind ``/api/data/{collection}[/{id}]``.

Each resource kind has one handler implementing the subset of
list/get/create/update/delete it supports. Shared rules:

* creates always write into the principal's own site;
* updates and deletes re-read the stored row and require its owning site to be
  the principal's site (or the principal to be an admin);
* reads are public.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Type, TypeVar

import pydantic

from sidey.db import (
    CollectionRecord,
    CommentRecord,
    DbClient,
    ImageKind,
    ImageRecord,
    MediaRecord,
    PostRecord,
    ProfileRecord,
    SettingRecord,
)
from sidey.errors import (
    Conflict,
    Forbidden,
    MethodNotAllowed,
    NotFound,
    ValidationError,
)
from sidey.identity import Principal, require_auth
from sidey.public import domain_variants, normalize_domain
from sidey.schemas import (
    ApiModel,
    CollectionInput,
    CollectionPatch,
    CommentInput,
    ImageInput,
    ImagePatch,
    MediaInput,
    PostInput,
    PostPatch,
    ProfileInput,
    SettingInput,
    SettingPatch,
    SitePatch,
    UserPatch,
)
from sidey.security import generate_id

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 500

SORT_FIELDS = {
    "createdAt": "created_at",
    "created_at": "created_at",
    "updatedAt": "updated_at",
    "updated_at": "updated_at",
    "title": "title",
}

ModelT = TypeVar("ModelT", bound=ApiModel)


class ResourceKind(str, enum.Enum):
    PROFILES = "profiles"
    COLLECTIONS = "collections"
    MEDIA = "media"
    GALLERY = "gallery"
    BTS = "bts"
    POSTS = "posts"
    COMMENTS = "comments"
    SETTINGS = "settings"
    USERS = "users"
    SITES = "sites"


def slugify(title: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to one hyphen, trim hyphens."""
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


def _parse_limit(raw: Optional[str]) -> int:
    try:
        value = int(raw) if raw is not None else DEFAULT_LIMIT
    except ValueError:
        return DEFAULT_LIMIT
    if value <= 0:
        return DEFAULT_LIMIT
    return min(value, MAX_LIMIT)


@dataclass(frozen=True)
class ListQuery:
    site_id: Optional[str] = None
    order_by: str = "created_at"
    descending: bool = True
    limit: int = DEFAULT_LIMIT
    collection_id: Optional[str] = None
    content_id: Optional[str] = None
    key: Optional[str] = None
    site_name: Optional[str] = None

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "ListQuery":
        # Unknown sort fields and directions fall back to createdAt DESC.
        order_by = SORT_FIELDS.get(params.get("orderBy") or "", "created_at")
        order_dir = (params.get("orderDir") or "DESC").upper()
        return cls(
            site_id=params.get("siteId") or None,
            order_by=order_by,
            descending=order_dir != "ASC",
            limit=_parse_limit(params.get("limit")),
            collection_id=params.get("collectionId") or None,
            content_id=params.get("contentId") or None,
            key=params.get("key") or None,
            site_name=params.get("siteName") or None,
        )


def parse_payload(model: Type[ModelT], payload: Any) -> ModelT:
    try:
        return model.model_validate(payload if payload is not None else {})
    except pydantic.ValidationError as exc:
        raise ValidationError(describe_validation_error(exc.errors())) from exc


def describe_validation_error(errors: list) -> str:
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def ensure_site_owner(principal: Principal, site_id: Optional[str], what: str) -> None:
    if not principal.owns_site(site_id):
        logger.warning(
            "Denied %s on site %s to user %s (site %s)",
            what,
            site_id,
            principal.user_id,
            principal.site_name,
        )
        raise Forbidden("Unauthorized")


def _require_site_filter(query: ListQuery) -> str:
    if not query.site_id:
        raise ValidationError("Site ID required")
    return query.site_id


def _found(record, label: str):
    if record is None:
        raise NotFound(f"{label} not found")
    return record


class ResourceHandler:
    """Every operation is unsupported unless a subclass overrides it."""

    # When true, PUT without an id (or POST with one) targets a site's singleton row.
    self_targeting = False

    def list(self, db: DbClient, principal: Optional[Principal], query: ListQuery):
        raise MethodNotAllowed()

    def get(self, db: DbClient, principal: Optional[Principal], doc_id: str):
        raise MethodNotAllowed()

    def create(self, db: DbClient, principal: Principal, payload: Any):
        raise MethodNotAllowed()

    def update(
        self, db: DbClient, principal: Principal, doc_id: Optional[str], payload: Any
    ):
        raise MethodNotAllowed()

    def delete(self, db: DbClient, principal: Principal, doc_id: str):
        raise MethodNotAllowed()


class ProfileHandler(ResourceHandler):
    self_targeting = True

    def list(self, db, principal, query):
        return self.get(db, principal, _require_site_filter(query))

    def get(self, db, principal, doc_id):
        profile = _found(db.get_profile(doc_id), "Profile")
        owner_view = principal is not None and principal.owns_site(doc_id)
        return profile.as_dict(hide_invisible=not owner_view)

    def create(self, db, principal, payload):
        return self.update(db, principal, None, payload)

    def update(self, db, principal, doc_id, payload):
        target = doc_id or principal.site_name
        ensure_site_owner(principal, target, "profile upsert")
        if db.get_site(target) is None:
            raise NotFound("Site not found")
        data = parse_payload(ProfileInput, payload)
        db.upsert_profile(ProfileRecord(site_id=target, **data.model_dump()))
        return {"success": True}


def _media_records(collection_id: str, items: list[MediaInput]) -> list[MediaRecord]:
    return [
        MediaRecord(
            id=generate_id(),
            collection_id=collection_id,
            url=item.url,
            type=item.type,
            filename=item.filename,
            order_index=index,
        )
        for index, item in enumerate(i for i in items if i.url)
    ]


def _collection_with_media(db: DbClient, collection: CollectionRecord) -> dict:
    data = collection.as_dict()
    data["media"] = [m.as_dict() for m in db.list_media(collection.id)]
    return data


class CollectionHandler(ResourceHandler):
    def list(self, db, principal, query):
        if query.site_id:
            collections = db.list_collections(query.site_id, limit=query.limit)
        else:
            # Cross-tenant public feed.
            collections = db.list_collections(
                None,
                order_by=query.order_by,
                descending=query.descending,
                limit=query.limit,
            )
        return [_collection_with_media(db, c) for c in collections]

    def get(self, db, principal, doc_id):
        collection = _found(db.get_collection(doc_id), "Collection")
        return _collection_with_media(db, collection)

    def create(self, db, principal, payload):
        data = parse_payload(CollectionInput, payload)
        collection = CollectionRecord(
            id=generate_id(),
            site_id=principal.site_name,
            title=data.title,
            description=data.description or None,
            software=data.software,
            equipment=data.equipment,
            order_index=data.order_index,
        )
        db.create_collection(collection, _media_records(collection.id, data.media))
        return {"id": collection.id, "success": True}

    def update(self, db, principal, doc_id, payload):
        collection = _found(db.get_collection(doc_id), "Collection")
        ensure_site_owner(principal, collection.site_id, "collection update")
        patch = parse_payload(CollectionPatch, payload).patch()
        media = patch.pop("media", None) or []
        if patch.get("title", "") is None:
            patch.pop("title")
        for list_field in ("software", "equipment"):
            if list_field in patch and patch[list_field] is None:
                patch[list_field] = []
        if "order_index" in patch and patch["order_index"] is None:
            patch["order_index"] = 0
        if patch:
            db.update_collection(doc_id, patch)
        new_media = [MediaInput.model_validate(m) for m in media]
        if any(m.url for m in new_media):
            db.append_media(doc_id, _media_records(doc_id, new_media))
        return {"success": True}

    def delete(self, db, principal, doc_id):
        collection = _found(db.get_collection(doc_id), "Collection")
        ensure_site_owner(principal, collection.site_id, "collection delete")
        db.delete_collection(doc_id)
        return {"success": True}


class MediaHandler(ResourceHandler):
    """Collection media; ownership follows the parent collection's site."""

    def _owned_collection(self, db, principal, collection_id, what):
        collection = _found(db.get_collection(collection_id), "Collection")
        ensure_site_owner(principal, collection.site_id, what)
        return collection

    def list(self, db, principal, query):
        if not query.collection_id:
            raise ValidationError("collectionId required")
        return [m.as_dict() for m in db.list_media(query.collection_id)]

    def get(self, db, principal, doc_id):
        return _found(db.get_media(doc_id), "Media").as_dict()

    def create(self, db, principal, payload):
        body = payload if isinstance(payload, dict) else {}
        collection_id = body.get("collectionId")
        if not collection_id:
            raise ValidationError("collectionId required")
        item = parse_payload(MediaInput, payload)
        if not item.url:
            raise ValidationError("url required")
        self._owned_collection(db, principal, collection_id, "media create")
        added = db.append_media(collection_id, _media_records(collection_id, [item]))
        return {"id": added[0].id, "success": True}

    def delete(self, db, principal, doc_id):
        media = _found(db.get_media(doc_id), "Media")
        self._owned_collection(db, principal, media.collection_id, "media delete")
        db.delete_media(doc_id)
        return {"success": True}


class ImageHandler(ResourceHandler):
    def __init__(self, kind: ImageKind):
        self.kind = kind

    def list(self, db, principal, query):
        site_id = _require_site_filter(query)
        return [i.as_dict() for i in db.list_images(self.kind, site_id)]

    def get(self, db, principal, doc_id):
        return _found(db.get_image(self.kind, doc_id), "Image").as_dict()

    def create(self, db, principal, payload):
        data = parse_payload(ImageInput, payload)
        image = ImageRecord(
            id=generate_id(),
            site_id=principal.site_name,
            url=data.url,
            filename=data.filename,
            type=data.type or "image",
            order_index=data.order_index,
        )
        db.create_image(self.kind, image)
        return {"id": image.id, "success": True}

    def update(self, db, principal, doc_id, payload):
        image = _found(db.get_image(self.kind, doc_id), "Image")
        ensure_site_owner(principal, image.site_id, f"{self.kind.value} update")
        patch = parse_payload(ImagePatch, payload).patch()
        if "order_index" in patch and patch["order_index"] is None:
            patch["order_index"] = 0
        if patch:
            db.update_image(self.kind, doc_id, patch)
        return {"success": True}

    def delete(self, db, principal, doc_id):
        image = _found(db.get_image(self.kind, doc_id), "Image")
        ensure_site_owner(principal, image.site_id, f"{self.kind.value} delete")
        db.delete_image(self.kind, doc_id)
        return {"success": True}


class PostHandler(ResourceHandler):
    """Blog posts. Drafts are only visible to the owning site."""

    def list(self, db, principal, query):
        site_id = _require_site_filter(query)
        owner_view = principal is not None and principal.owns_site(site_id)
        posts = db.list_posts(site_id, published_only=not owner_view)
        return [p.as_dict() for p in posts]

    def get(self, db, principal, doc_id):
        post = _found(db.get_post(doc_id), "Post")
        if not post.published:
            principal = require_auth(principal)
            ensure_site_owner(principal, post.site_id, "draft read")
        return post.as_dict()

    def create(self, db, principal, payload):
        data = parse_payload(PostInput, payload)
        post = PostRecord(
            id=generate_id(),
            site_id=principal.site_name,
            title=data.title,
            content=data.content or "",
            slug=slugify(data.title),
            published=data.published is not False,
        )
        db.create_post(post)
        return {"id": post.id, "success": True}

    def update(self, db, principal, doc_id, payload):
        post = _found(db.get_post(doc_id), "Post")
        ensure_site_owner(principal, post.site_id, "post update")
        patch = parse_payload(PostPatch, payload).patch()
        if patch.get("title", "") is None:
            patch.pop("title")
        if "title" in patch:
            patch["slug"] = slugify(patch["title"])
        if "content" in patch and patch["content"] is None:
            patch["content"] = ""
        if "published" in patch:
            patch["published"] = patch["published"] is not False
        if patch:
            db.update_post(doc_id, patch)
        return {"success": True}

    def delete(self, db, principal, doc_id):
        post = _found(db.get_post(doc_id), "Post")
        ensure_site_owner(principal, post.site_id, "post delete")
        db.delete_post(doc_id)
        return {"success": True}


class CommentHandler(ResourceHandler):
    """
    Comments are written by any signed-in user on any site, so deletion is
    checked against the author rather than the site.
    """

    def list(self, db, principal, query):
        if query.collection_id:
            comments = db.list_comments(collection_id=query.collection_id)
        elif query.content_id:
            comments = db.list_comments(content_id=query.content_id)
        else:
            raise ValidationError("collectionId or contentId required")
        return [c.as_dict() for c in comments]

    def get(self, db, principal, doc_id):
        return _found(db.get_comment(doc_id), "Comment").as_dict()

    def create(self, db, principal, payload):
        data = parse_payload(CommentInput, payload)
        if not data.text:
            raise ValidationError("Comment text required")
        if bool(data.collection_id) == bool(data.content_id):
            raise ValidationError("Exactly one of collectionId or contentId required")
        if data.collection_id:
            _found(db.get_collection(data.collection_id), "Collection")
        comment = CommentRecord(
            id=generate_id(),
            collection_id=data.collection_id,
            content_id=data.content_id,
            author_id=principal.user_id,
            author_name=data.author_name or principal.site_name or principal.email,
            text=data.text,
        )
        db.create_comment(comment)
        return {"id": comment.id, "success": True}

    def delete(self, db, principal, doc_id):
        comment = _found(db.get_comment(doc_id), "Comment")
        if comment.author_id != principal.user_id and not principal.is_admin:
            logger.warning(
                "Denied comment delete %s to user %s", doc_id, principal.user_id
            )
            raise Forbidden("Unauthorized")
        db.delete_comment(doc_id)
        return {"success": True}


class SettingHandler(ResourceHandler):
    def list(self, db, principal, query):
        if not query.site_id:
            raise ValidationError("siteId required")
        return [s.as_dict() for s in db.list_settings(query.site_id, query.key)]

    def get(self, db, principal, doc_id):
        return _found(db.get_setting(doc_id), "Setting").as_dict()

    def create(self, db, principal, payload):
        data = parse_payload(SettingInput, payload)
        if not data.key:
            raise ValidationError("key required")
        target = data.site_id or principal.site_name
        ensure_site_owner(principal, target, "setting create")
        if target != principal.site_name and db.get_site(target) is None:
            raise NotFound("Site not found")
        setting = SettingRecord(
            id=generate_id(),
            site_id=target,
            key=data.key,
            url=data.url or None,
            value=data.value or None,
        )
        db.create_setting(setting)
        return {"id": setting.id, "success": True}

    def update(self, db, principal, doc_id, payload):
        setting = _found(db.get_setting(doc_id), "Setting")
        ensure_site_owner(principal, setting.site_id, "setting update")
        patch = parse_payload(SettingPatch, payload).patch()
        if patch:
            db.update_setting(doc_id, {k: v or None for k, v in patch.items()})
        return {"success": True}

    def delete(self, db, principal, doc_id):
        setting = _found(db.get_setting(doc_id), "Setting")
        ensure_site_owner(principal, setting.site_id, "setting delete")
        db.delete_setting(doc_id)
        return {"success": True}


def _claim_domain(db: DbClient, site_id: str, domain: Optional[str]) -> Optional[str]:
    """Normalise a custom domain, refusing one already held by another site."""
    domain = normalize_domain(domain)
    if domain:
        holder = db.find_site_by_domain(domain_variants(domain))
        if holder is not None and holder.id != site_id:
            raise Conflict("Domain already in use")
    return domain


class UserHandler(ResourceHandler):
    """
    Two tiers: a public lookup by site name exposing only ``id``, ``siteName``
    and ``isPro``, and a private lookup by id for the user themselves or an admin.
    """

    def _ensure_self(self, principal, user_id, what):
        principal = require_auth(principal)
        if user_id != principal.user_id and not principal.is_admin:
            logger.warning(
                "Denied %s of user %s to user %s", what, user_id, principal.user_id
            )
            raise Forbidden("Unauthorized")
        return principal

    def list(self, db, principal, query):
        if not query.site_name:
            raise ValidationError("userId or siteName required")
        user = _found(db.get_user_by_site_name(query.site_name), "User")
        return [user.as_public_dict()]

    def get(self, db, principal, doc_id):
        self._ensure_self(principal, doc_id, "read")
        return _found(db.get_user(doc_id), "User").as_dict()

    def update(self, db, principal, doc_id, payload):
        self._ensure_self(principal, doc_id, "update")
        user = _found(db.get_user(doc_id), "User")
        patch = parse_payload(UserPatch, payload).patch()
        if "custom_domain" in patch:
            patch["custom_domain"] = _claim_domain(
                db, user.site_name, patch["custom_domain"]
            )
            db.update_site(user.site_name, {"custom_domain": patch["custom_domain"]})
        if patch:
            db.update_user(doc_id, patch)
        return {"success": True}


class SiteHandler(ResourceHandler):
    def get(self, db, principal, doc_id):
        site = _found(db.get_site(doc_id), "Site")
        owner_view = principal is not None and (
            principal.is_admin or principal.user_id == site.owner_id
        )
        return site.as_dict(include_owner_email=owner_view)

    def update(self, db, principal, doc_id, payload):
        site = _found(db.get_site(doc_id), "Site")
        if site.owner_id != principal.user_id and not principal.is_admin:
            logger.warning(
                "Denied site update %s to user %s", doc_id, principal.user_id
            )
            raise Forbidden("Unauthorized")
        patch = parse_payload(SitePatch, payload).patch()
        if "custom_domain" in patch:
            patch["custom_domain"] = _claim_domain(db, doc_id, patch["custom_domain"])
            db.update_user(site.owner_id, {"custom_domain": patch["custom_domain"]})
        if patch:
            db.update_site(doc_id, patch)
        return {"success": True}


HANDLERS: dict[ResourceKind, ResourceHandler] = {
    ResourceKind.PROFILES: ProfileHandler(),
    ResourceKind.COLLECTIONS: CollectionHandler(),
    ResourceKind.MEDIA: MediaHandler(),
    ResourceKind.GALLERY: ImageHandler(ImageKind.GALLERY),
    ResourceKind.BTS: ImageHandler(ImageKind.BTS),
    ResourceKind.POSTS: PostHandler(),
    ResourceKind.COMMENTS: CommentHandler(),
    ResourceKind.SETTINGS: SettingHandler(),
    ResourceKind.USERS: UserHandler(),
    ResourceKind.SITES: SiteHandler(),
}

_unhandled = set(ResourceKind) - set(HANDLERS)
if _unhandled:
    raise RuntimeError(f"No handler registered for {sorted(k.value for k in _unhandled)}")


def resolve_kind(name: str) -> ResourceKind:
    if not name:
        raise ValidationError("Collection name required")
    try:
        return ResourceKind(name)
    except ValueError:
        raise NotFound("Unknown collection") from None


def dispatch(
    kind: ResourceKind,
    method: str,
    db: DbClient,
    principal: Optional[Principal],
    doc_id: Optional[str] = None,
    payload: Any = None,
    query: Optional[ListQuery] = None,
):
    """Route one data request to its handler, authenticating mutations first."""
    handler = HANDLERS[kind]
    method = method.upper()
    if method == "GET":
        if doc_id:
            return handler.get(db, principal, doc_id)
        return handler.list(db, principal, query or ListQuery())

    principal = require_auth(principal)
    if method == "POST":
        if doc_id and handler.self_targeting:
            return handler.update(db, principal, doc_id, payload)
        if doc_id:
            raise MethodNotAllowed()
        return handler.create(db, principal, payload)
    if method == "PUT":
        if not doc_id and not handler.self_targeting:
            raise MethodNotAllowed()
        return handler.update(db, principal, doc_id, payload)
    if method == "DELETE":
        if not doc_id:
            raise MethodNotAllowed()
        return handler.delete(db, principal, doc_id)
    raise MethodNotAllowed()
