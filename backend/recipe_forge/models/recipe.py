"""Recipe models — recipes, their comments and likes."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, false, func
from sqlalchemy.orm import Mapped, mapped_column

from recipe_forge.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Recipe(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A recipe, written by hand or generated from ingredients."""

    __tablename__ = "recipes"

    author_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    ingredients: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    instructions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    cuisine: Mapped[str | None] = mapped_column(String(100), default=None)
    prep_time_minutes: Mapped[int | None] = mapped_column(Integer, default=None)
    cook_time_minutes: Mapped[int | None] = mapped_column(Integer, default=None)
    servings: Mapped[int | None] = mapped_column(Integer, default=None)
    is_ai_generated: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    video_status: Mapped[str | None] = mapped_column(String(20), default=None)  # queued, ready, failed
    video_url: Mapped[str | None] = mapped_column(String(512), default=None)

    def __repr__(self) -> str:
        return f"<Recipe(id={self.id}, title={self.title!r}, author_id={self.author_id})>"


class RecipeComment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A member comment on a recipe."""

    __tablename__ = "recipe_comments"

    recipe_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("recipes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<RecipeComment(id={self.id}, recipe_id={self.recipe_id}, author_id={self.author_id})>"


class RecipeLike(UUIDPrimaryKeyMixin, Base):
    """One like per user per recipe."""

    __tablename__ = "recipe_likes"
    __table_args__ = (UniqueConstraint("recipe_id", "user_id", name="uq_recipe_like_user"),)

    recipe_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("recipes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
