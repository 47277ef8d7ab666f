"""Community feed API routes."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.api.deps import (
    QuotaGate,
    actor_role,
    get_current_active_user,
    get_db,
    require_member,
    require_quota,
)
from recipe_forge.auth.permissions import can_edit_resource
from recipe_forge.entitlements.features import FeatureKey
from recipe_forge.models.community import CommunityPost
from recipe_forge.models.recipe import Recipe
from recipe_forge.models.user import User
from recipe_forge.schemas.auth import MessageResponse
from recipe_forge.schemas.community import PostCreate, PostListResponse, PostResponse, PostUpdate

router = APIRouter(prefix="/api/v1/community", tags=["community"])


async def _get_editable_post(db: AsyncSession, post_id: uuid.UUID, user: User) -> CommunityPost:
    post = await db.get(CommunityPost, post_id)
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    if not can_edit_resource(actor_role(user), user.id, post.author_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only modify your own posts",
        )
    return post


@router.post(
    "/posts",
    response_model=PostResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Share a post to the community feed",
)
async def create_post(
    body: PostCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_member),
    gate: QuotaGate = Depends(require_quota(FeatureKey.COMMUNITY_POST)),
) -> PostResponse:
    """Create a post; a linked recipe must be public or the caller's own."""
    if body.recipe_id is not None:
        recipe = await db.get(Recipe, body.recipe_id)
        if recipe is None or not (recipe.is_public or recipe.author_id == current_user.id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipe not found")

    post = CommunityPost(author_id=current_user.id, **body.model_dump())
    db.add(post)
    await db.flush()
    await gate.consume(post)
    await db.refresh(post)
    return PostResponse.model_validate(post)


@router.get("/posts", response_model=PostListResponse, summary="Community feed")
async def list_posts(
    author_id: uuid.UUID | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> PostListResponse:
    """Newest posts first. Public; guests may read the feed."""
    filters = []
    if author_id is not None:
        filters.append(CommunityPost.author_id == author_id)

    total = (await db.execute(select(func.count()).select_from(CommunityPost).where(*filters))).scalar_one()
    result = await db.execute(
        select(CommunityPost).where(*filters).order_by(CommunityPost.created_at.desc()).offset(skip).limit(limit)
    )
    return PostListResponse(
        items=[PostResponse.model_validate(p) for p in result.scalars().all()],
        total=total,
    )


@router.get("/posts/{post_id}", response_model=PostResponse)
async def get_post(post_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> PostResponse:
    post = await db.get(CommunityPost, post_id)
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return PostResponse.model_validate(post)


@router.patch("/posts/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: uuid.UUID,
    body: PostUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> PostResponse:
    post = await _get_editable_post(db, post_id, current_user)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(post, field, value)
    await db.flush()
    await db.refresh(post)
    return PostResponse.model_validate(post)


@router.delete("/posts/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MessageResponse:
    """Authors and admins may delete a post. Usage is not refunded."""
    post = await _get_editable_post(db, post_id, current_user)
    await db.delete(post)
    await db.flush()
    return MessageResponse(message="Post deleted")
