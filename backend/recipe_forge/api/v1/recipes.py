"""Recipe API routes — generation, CRUD, videos, comments and likes."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.api.deps import (
    QuotaGate,
    actor_role,
    get_current_active_user,
    get_db,
    get_optional_user,
    require_feature,
    require_member,
    require_quota,
)
from recipe_forge.auth.permissions import can_edit_resource
from recipe_forge.entitlements.features import FeatureFlag, FeatureKey
from recipe_forge.models.recipe import Recipe, RecipeComment, RecipeLike
from recipe_forge.models.user import User
from recipe_forge.schemas.auth import MessageResponse
from recipe_forge.schemas.recipe import (
    CommentCreate,
    CommentListResponse,
    CommentResponse,
    LikeResponse,
    RecipeCreate,
    RecipeGenerateRequest,
    RecipeListResponse,
    RecipeResponse,
    RecipeUpdate,
    SuggestionsResponse,
)
from recipe_forge.services.recipe_generator import (
    RecipeGenerationError,
    generate_recipe,
    suggest_improvements,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/recipes", tags=["recipes"])


async def _get_visible_recipe(db: AsyncSession, recipe_id: uuid.UUID, user: User | None) -> Recipe:
    """Public recipes are visible to everyone, private ones to their author and admins."""
    recipe = await db.get(Recipe, recipe_id)
    if recipe is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipe not found")
    if not recipe.is_public and not can_edit_resource(actor_role(user), user.id if user else None, recipe.author_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipe not found")
    return recipe


async def _get_editable_recipe(db: AsyncSession, recipe_id: uuid.UUID, user: User) -> Recipe:
    recipe = await _get_visible_recipe(db, recipe_id, user)
    if not can_edit_resource(actor_role(user), user.id, recipe.author_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only modify your own recipes",
        )
    return recipe


@router.post(
    "/generate",
    response_model=RecipeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate a recipe from ingredients",
)
async def generate(
    body: RecipeGenerateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_member),
    gate: QuotaGate = Depends(require_quota(FeatureKey.RECIPE_GENERATION)),
) -> RecipeResponse:
    """Generate a recipe with the LLM and save it for the caller."""
    try:
        generated = await generate_recipe(
            body.ingredients,
            cuisine=body.cuisine,
            dietary_restrictions=body.dietary_restrictions,
            servings=body.servings,
        )
    except RecipeGenerationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    recipe = Recipe(
        author_id=current_user.id,
        is_ai_generated=True,
        is_public=body.is_public,
        **generated.model_dump(),
    )
    db.add(recipe)
    await db.flush()
    await gate.consume(recipe)
    await db.refresh(recipe)
    return RecipeResponse.model_validate(recipe)


@router.post(
    "",
    response_model=RecipeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a recipe by hand",
)
async def create_recipe(
    body: RecipeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_member),
) -> RecipeResponse:
    recipe = Recipe(author_id=current_user.id, **body.model_dump())
    db.add(recipe)
    await db.flush()
    await db.refresh(recipe)
    return RecipeResponse.model_validate(recipe)


@router.get("", response_model=RecipeListResponse, summary="List recipes")
async def list_recipes(
    mine: bool = Query(False, description="Only the caller's own recipes"),
    cuisine: str | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> RecipeListResponse:
    """Public recipes plus, for signed-in users, their own private ones."""
    if mine:
        if current_user is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in to list your recipes")
        filters = [Recipe.author_id == current_user.id]
    elif current_user is not None:
        filters = [or_(Recipe.is_public.is_(True), Recipe.author_id == current_user.id)]
    else:
        filters = [Recipe.is_public.is_(True)]
    if cuisine is not None:
        filters.append(Recipe.cuisine == cuisine)

    total = (await db.execute(select(func.count()).select_from(Recipe).where(*filters))).scalar_one()
    result = await db.execute(
        select(Recipe).where(*filters).order_by(Recipe.created_at.desc()).offset(skip).limit(limit)
    )
    return RecipeListResponse(
        items=[RecipeResponse.model_validate(r) for r in result.scalars().all()],
        total=total,
    )


@router.get("/{recipe_id}", response_model=RecipeResponse)
async def get_recipe(
    recipe_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> RecipeResponse:
    return RecipeResponse.model_validate(await _get_visible_recipe(db, recipe_id, current_user))


@router.put("/{recipe_id}", response_model=RecipeResponse)
async def update_recipe(
    recipe_id: uuid.UUID,
    body: RecipeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> RecipeResponse:
    """Partially update a recipe. Authors and admins only."""
    recipe = await _get_editable_recipe(db, recipe_id, current_user)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(recipe, field, value)
    await db.flush()
    await db.refresh(recipe)
    return RecipeResponse.model_validate(recipe)


@router.delete("/{recipe_id}", response_model=MessageResponse)
async def delete_recipe(
    recipe_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MessageResponse:
    recipe = await _get_editable_recipe(db, recipe_id, current_user)
    await db.execute(delete(RecipeComment).where(RecipeComment.recipe_id == recipe.id))
    await db.execute(delete(RecipeLike).where(RecipeLike.recipe_id == recipe.id))
    await db.delete(recipe)
    await db.flush()
    return MessageResponse(message="Recipe deleted")


@router.post(
    "/{recipe_id}/video",
    response_model=RecipeResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request a cooking video for a recipe",
)
async def request_video(
    recipe_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_member),
    gate: QuotaGate = Depends(require_quota(FeatureKey.VIDEO_GENERATION)),
) -> RecipeResponse:
    """Queue video rendering for one of the caller's recipes."""
    recipe = await _get_editable_recipe(db, recipe_id, current_user)
    if recipe.video_status in ("queued", "ready"):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Video already {recipe.video_status}",
        )
    previous_status = recipe.video_status
    recipe.video_status = "queued"
    await db.flush()
    try:
        await gate.consume()
    except HTTPException:
        recipe.video_status = previous_status
        await db.flush()
        raise
    logger.info("Queued video for recipe %s", recipe.id)
    await db.refresh(recipe)
    return RecipeResponse.model_validate(recipe)


@router.post("/{recipe_id}/suggestions", response_model=SuggestionsResponse)
async def recipe_suggestions(
    recipe_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_member),
    _flag: None = Depends(require_feature(FeatureFlag.AI_SUGGESTIONS)),
) -> SuggestionsResponse:
    """AI improvement tips for a visible recipe (plans with AI suggestions)."""
    recipe = await _get_visible_recipe(db, recipe_id, current_user)
    try:
        tips = await suggest_improvements(recipe.title, recipe.ingredients, recipe.instructions)
    except RecipeGenerationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return SuggestionsResponse(recipe_id=recipe.id, suggestions=tips)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


@router.post(
    "/{recipe_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_comment(
    recipe_id: uuid.UUID,
    body: CommentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_member),
    gate: QuotaGate = Depends(require_quota(FeatureKey.COMMUNITY_COMMENT)),
) -> CommentResponse:
    recipe = await _get_visible_recipe(db, recipe_id, current_user)
    comment = RecipeComment(recipe_id=recipe.id, author_id=current_user.id, content=body.content)
    db.add(comment)
    await db.flush()
    await gate.consume(comment)
    await db.refresh(comment)
    return CommentResponse.model_validate(comment)


@router.get("/{recipe_id}/comments", response_model=CommentListResponse)
async def list_comments(
    recipe_id: uuid.UUID,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> CommentListResponse:
    recipe = await _get_visible_recipe(db, recipe_id, current_user)
    where = RecipeComment.recipe_id == recipe.id
    total = (await db.execute(select(func.count()).select_from(RecipeComment).where(where))).scalar_one()
    result = await db.execute(
        select(RecipeComment).where(where).order_by(RecipeComment.created_at).offset(skip).limit(limit)
    )
    return CommentListResponse(
        items=[CommentResponse.model_validate(c) for c in result.scalars().all()],
        total=total,
    )


@router.delete("/{recipe_id}/comments/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    recipe_id: uuid.UUID,
    comment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MessageResponse:
    """Comment authors and admins may delete a comment."""
    comment = await db.get(RecipeComment, comment_id)
    if comment is None or comment.recipe_id != recipe_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
    if not can_edit_resource(actor_role(current_user), current_user.id, comment.author_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only delete your own comments",
        )
    await db.delete(comment)
    await db.flush()
    return MessageResponse(message="Comment deleted")


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------


@router.post("/{recipe_id}/like", response_model=LikeResponse)
async def toggle_like(
    recipe_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_member),
) -> LikeResponse:
    """Like the recipe, or remove the like if the caller already liked it."""
    recipe = await _get_visible_recipe(db, recipe_id, current_user)
    result = await db.execute(
        select(RecipeLike).where(RecipeLike.recipe_id == recipe.id, RecipeLike.user_id == current_user.id)
    )
    like = result.scalar_one_or_none()
    if like is None:
        db.add(RecipeLike(recipe_id=recipe.id, user_id=current_user.id))
        liked = True
    else:
        await db.delete(like)
        liked = False
    await db.flush()

    count = (
        await db.execute(select(func.count()).select_from(RecipeLike).where(RecipeLike.recipe_id == recipe.id))
    ).scalar_one()
    return LikeResponse(recipe_id=recipe.id, liked=liked, like_count=count)

