"""SQLAlchemy models for Recipe Forge.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from recipe_forge.models.community import CommunityPost
from recipe_forge.models.plan import SubscriptionPlan
from recipe_forge.models.recipe import Recipe, RecipeComment, RecipeLike
from recipe_forge.models.subscription import Subscription, UsageCounter
from recipe_forge.models.user import User

__all__ = [
    "CommunityPost",
    "Recipe",
    "RecipeComment",
    "RecipeLike",
    "Subscription",
    "SubscriptionPlan",
    "UsageCounter",
    "User",
]
