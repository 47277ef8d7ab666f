"""Pydantic v2 request/response schemas for the community feed."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PostCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1, max_length=10000)
    recipe_id: uuid.UUID | None = None


class PostUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    content: str | None = Field(None, min_length=1, max_length=10000)


class PostResponse(BaseModel):
    id: uuid.UUID
    author_id: uuid.UUID
    recipe_id: uuid.UUID | None
    title: str
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PostListResponse(BaseModel):
    items: list[PostResponse]
    total: int
