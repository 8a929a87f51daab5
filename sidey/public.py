"""
Unauthenticated read models: the public site payload and custom-domain lookup.
"""

from __future__ import annotations

from typing import Optional

from sidey.db import DbClient, ImageKind, SOCIAL_FIELDS
from sidey.errors import NotFound, ValidationError


def normalize_domain(domain: Optional[str]) -> Optional[str]:
    """Lowercase and trim a custom domain; blank values clear it."""
    if domain is None:
        return None
    domain = domain.strip().lower()
    for scheme in ("https://", "http://"):
        if domain.startswith(scheme):
            domain = domain[len(scheme):]
    return domain.rstrip("/") or None


def domain_variants(domain: str) -> list[str]:
    """The bare and ``www.`` forms of a normalised domain."""
    bare = domain[len("www."):] if domain.startswith("www.") else domain
    return [bare, f"www.{bare}"]


def get_public_site(db: DbClient, site_id: str) -> dict:
    """
    Assemble everything a site's public pages render.

    Social links are nulled when their ``show*`` flag is off, and only
    published posts are included. Collections and lists are always lists.
    """
    site = db.get_site(site_id)
    if site is None:
        raise NotFound("Site not found")

    profile = db.get_profile(site_id)
    profile_payload = None
    if profile is not None:
        profile_payload = {
            "fullName": profile.full_name,
            "about": profile.about,
            "resumeUrl": profile.resume_url,
        }
        for name in SOCIAL_FIELDS:
            profile_payload[name] = profile.visible_social(name)

    collections = []
    for collection in db.list_collections(site_id, limit=10_000):
        collections.append(
            {
                "id": collection.id,
                "title": collection.title,
                "description": collection.description,
                "software": list(collection.software or []),
                "equipment": list(collection.equipment or []),
                "media": [
                    {
                        "id": m.id,
                        "url": m.url,
                        "type": m.type,
                        "filename": m.filename,
                    }
                    for m in db.list_media(collection.id)
                ],
            }
        )

    return {
        "site": {
            "id": site.id,
            "template": site.template,
            "customDomain": site.custom_domain,
        },
        "profile": profile_payload,
        "collections": collections,
        "gallery": [
            {"id": i.id, "url": i.url, "type": i.type, "filename": i.filename}
            for i in db.list_images(ImageKind.GALLERY, site_id)
        ],
        "bts": [
            {"id": i.id, "url": i.url, "filename": i.filename}
            for i in db.list_images(ImageKind.BTS, site_id)
        ],
        "posts": [
            {
                "id": p.id,
                "title": p.title,
                "content": p.content,
                "slug": p.slug,
                "createdAt": p.created_at,
            }
            for p in db.list_posts(site_id, published_only=True)
        ],
    }


def lookup_by_domain(db: DbClient, domain: Optional[str]) -> dict:
    normalized = normalize_domain(domain)
    if not normalized:
        raise ValidationError("Domain parameter required")
    site = db.find_site_by_domain(domain_variants(normalized))
    if site is None:
        raise NotFound("Site not found for domain")
    owner = db.get_user(site.owner_id)
    return {
        "siteId": site.id,
        "template": site.template,
        "customDomain": site.custom_domain,
        "ownerName": owner.full_name if owner else None,
    }


def list_domain_sites(db: DbClient) -> dict:
    return {
        "sites": [
            {"id": s.id, "template": s.template, "customDomain": s.custom_domain}
            for s in db.list_sites_with_domain()
        ]
    }
