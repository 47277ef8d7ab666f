"""Pydantic v2 request/response schemas for recipes, comments and likes."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RecipeGenerateRequest(BaseModel):
    """Ingredients and preferences for an LLM-generated recipe."""

    ingredients: list[str] = Field(..., min_length=1, max_length=30)
    cuisine: str | None = Field(None, max_length=100)
    dietary_restrictions: list[str] = Field(default_factory=list, max_length=10)
    servings: int | None = Field(None, ge=1, le=50)
    is_public: bool = False


class RecipeBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    ingredients: list[str] = Field(..., min_length=1)
    instructions: list[str] = Field(..., min_length=1)
    cuisine: str | None = Field(None, max_length=100)
    prep_time_minutes: int | None = Field(None, ge=0)
    cook_time_minutes: int | None = Field(None, ge=0)
    servings: int | None = Field(None, ge=1)
    is_public: bool = False


class RecipeCreate(RecipeBase):
    pass


class RecipeUpdate(BaseModel):
    """All fields optional for partial updates."""

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    ingredients: list[str] | None = Field(None, min_length=1)
    instructions: list[str] | None = Field(None, min_length=1)
    cuisine: str | None = Field(None, max_length=100)
    prep_time_minutes: int | None = Field(None, ge=0)
    cook_time_minutes: int | None = Field(None, ge=0)
    servings: int | None = Field(None, ge=1)
    is_public: bool | None = None


class RecipeResponse(RecipeBase):
    id: uuid.UUID
    author_id: uuid.UUID
    is_ai_generated: bool
    video_status: str | None = None
    video_url: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RecipeListResponse(BaseModel):
    items: list[RecipeResponse]
    total: int


class SuggestionsResponse(BaseModel):
    recipe_id: uuid.UUID
    suggestions: list[str]


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class CommentResponse(BaseModel):
    id: uuid.UUID
    recipe_id: uuid.UUID
    author_id: uuid.UUID
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CommentListResponse(BaseModel):
    items: list[CommentResponse]
    total: int


class LikeResponse(BaseModel):
    recipe_id: uuid.UUID
    liked: bool
    like_count: int
