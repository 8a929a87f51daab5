"""
Pydantic schemas for the Sidey API.

Wire names are camelCase; Python attributes are snake_case. Patch models only
declare the fields a client may change, and ``patch()`` returns just the ones
that were actually sent.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MediaType = Literal["image", "video", "model"]


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class PatchModel(ApiModel):
    def patch(self) -> dict:
        return self.model_dump(exclude_unset=True)


# Auth


class SignupRequest(ApiModel):
    email: Optional[str] = None
    password: Optional[str] = None
    site_name: Optional[str] = None
    full_name: Optional[str] = None


class SigninRequest(ApiModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ResetPasswordRequest(ApiModel):
    email: Optional[str] = None


class UpdatePasswordRequest(ApiModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


# Tenant resources


class ProfileInput(ApiModel):
    """Full replacement of a site's profile."""

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

    @field_validator(
        "show_instagram", "show_linkedin", "show_imdb", "show_artstation",
        mode="before",
    )
    @classmethod
    def _none_is_false(cls, value):
        return False if value is None else value


class MediaInput(ApiModel):
    url: Optional[str] = None
    type: MediaType = "image"
    filename: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value):
        return value or "image"


class CollectionInput(ApiModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    software: list[str] = Field(default_factory=list)
    equipment: list[str] = Field(default_factory=list)
    order_index: int = 0
    media: list[MediaInput] = Field(default_factory=list)


class CollectionPatch(PatchModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    software: Optional[list[str]] = None
    equipment: Optional[list[str]] = None
    order_index: Optional[int] = None
    media: Optional[list[MediaInput]] = None


class ImageInput(ApiModel):
    url: str = Field(..., min_length=1)
    filename: Optional[str] = None
    type: Optional[str] = "image"
    order_index: int = 0


class ImagePatch(PatchModel):
    filename: Optional[str] = None
    order_index: Optional[int] = None


class PostInput(ApiModel):
    title: str = Field(..., min_length=1)
    content: Optional[str] = ""
    published: Optional[bool] = True


class PostPatch(PatchModel):
    title: Optional[str] = Field(default=None, min_length=1)
    content: Optional[str] = None
    published: Optional[bool] = None


class CommentInput(ApiModel):
    text: Optional[str] = None
    collection_id: Optional[str] = None
    content_id: Optional[str] = None
    author_name: Optional[str] = None


class SettingInput(ApiModel):
    key: Optional[str] = None
    site_id: Optional[str] = None
    url: Optional[str] = None
    value: Optional[str] = None


class SettingPatch(PatchModel):
    url: Optional[str] = None
    value: Optional[str] = None


class UserPatch(PatchModel):
    full_name: Optional[str] = None
    custom_domain: Optional[str] = None


class SitePatch(PatchModel):
    template: Optional[str] = None
    custom_domain: Optional[str] = None


# Storage


class DeleteBlobRequest(ApiModel):
    path: Optional[str] = None


class SignedUrlRequest(ApiModel):
    filename: Optional[str] = None
    content_type: Optional[str] = None
    size: Optional[int] = None
