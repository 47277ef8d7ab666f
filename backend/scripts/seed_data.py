"""Seed the database with the plan catalog, demo accounts and sample recipes.

Run from the backend directory:
    python -m scripts.seed_data
"""

import asyncio
import sys
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete, select

from recipe_forge.auth.passwords import hash_password
from recipe_forge.auth.permissions import Role
from recipe_forge.database import async_session_factory, engine
from recipe_forge.entitlements.plans import ensure_default_plans, get_plan_by_name
from recipe_forge.models.community import CommunityPost
from recipe_forge.models.recipe import Recipe
from recipe_forge.models.subscription import Subscription
from recipe_forge.models.user import User
from recipe_forge.services.subscription_service import get_or_create_subscription, subscribe

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

DEMO_USERS = [
    {"email": "admin@recipeforge.dev", "password": "admin1234", "name": "Demo Admin", "role": Role.ADMIN, "plan": "premium"},
    {"email": "cook@recipeforge.dev", "password": "cook1234", "name": "Demo Cook", "role": Role.MEMBER, "plan": "free"},
    {"email": "chef@recipeforge.dev", "password": "chef1234", "name": "Demo Chef", "role": Role.MEMBER, "plan": "pro"},
]

RECIPES = [
    {
        "title": "Pho Bo",
        "description": "Hanoi-style beef noodle soup with a clear, spiced broth.",
        "ingredients": [
            "1.5 kg beef bones",
            "400 g rice noodles",
            "300 g beef sirloin, thinly sliced",
            "1 onion, charred",
            "50 g ginger, charred",
            "3 star anise",
            "1 cinnamon stick",
            "3 tbsp fish sauce",
        ],
        "instructions": [
            "Blanch the bones for 5 minutes, then rinse.",
            "Simmer bones with onion, ginger and spices for 6 hours.",
            "Season the broth with fish sauce.",
            "Cook noodles, top with raw beef and ladle over boiling broth.",
        ],
        "cuisine": "Vietnamese",
        "prep_time_minutes": 30,
        "cook_time_minutes": 360,
        "servings": 6,
        "is_public": True,
    },
    {
        "title": "Goi Cuon",
        "description": "Fresh spring rolls with shrimp, herbs and peanut dipping sauce.",
        "ingredients": [
            "12 rice paper sheets",
            "200 g cooked shrimp",
            "100 g rice vermicelli",
            "1 bunch mint",
            "1 head lettuce",
            "4 tbsp hoisin sauce",
            "2 tbsp peanut butter",
        ],
        "instructions": [
            "Soften rice paper in warm water.",
            "Layer lettuce, noodles, herbs and shrimp, then roll tightly.",
            "Whisk hoisin and peanut butter with a little water for the dip.",
        ],
        "cuisine": "Vietnamese",
        "prep_time_minutes": 25,
        "cook_time_minutes": 5,
        "servings": 4,
        "is_public": True,
    },
    {
        "title": "Weeknight Fried Rice",
        "description": "Leftover rice, eggs and whatever vegetables are in the fridge.",
        "ingredients": ["3 cups cooked rice", "2 eggs", "1 cup mixed vegetables", "2 tbsp soy sauce"],
        "instructions": [
            "Scramble the eggs and set aside.",
            "Stir-fry vegetables, add rice and soy sauce.",
            "Fold the eggs back in.",
        ],
        "cuisine": "Chinese",
        "prep_time_minutes": 10,
        "cook_time_minutes": 10,
        "servings": 2,
        "is_public": False,
    },
]


async def seed() -> None:
    """Populate the database with plans, demo users and sample content.

    Idempotent: existing demo users and their content are deleted and
    re-created; the plan catalog is only filled in where missing.
    """
    async with async_session_factory() as session:
        emails = [u["email"] for u in DEMO_USERS]
        result = await session.execute(select(User.id).where(User.email.in_(emails)))
        existing_ids = list(result.scalars().all())
        if existing_ids:
            print(f"⚠️  Found {len(existing_ids)} demo user(s). Deleting and re-seeding...")
            await session.execute(delete(CommunityPost).where(CommunityPost.author_id.in_(existing_ids)))
            await session.execute(delete(Recipe).where(Recipe.author_id.in_(existing_ids)))
            await session.execute(delete(Subscription).where(Subscription.user_id.in_(existing_ids)))
            await session.execute(delete(User).where(User.id.in_(existing_ids)))
            await session.flush()

        # ------------------------------------------------------------------
        # 1. Plan catalog
        # ------------------------------------------------------------------
        created_plans = await ensure_default_plans(session)
        print(f"✅ Plan catalog ready ({len(created_plans)} new)")

        # ------------------------------------------------------------------
        # 2. Demo users with subscriptions
        # ------------------------------------------------------------------
        users: dict[str, User] = {}
        for data in DEMO_USERS:
            user = User(
                email=data["email"],
                hashed_password=hash_password(data["password"]),
                name=data["name"],
                is_active=True,
                role=data["role"].value,
            )
            session.add(user)
            await session.flush()

            await get_or_create_subscription(session, user)
            if data["plan"] != "free":
                plan = await get_plan_by_name(session, data["plan"])
                await subscribe(session, user, plan.id)
            users[data["email"]] = user
            print(f"   👤 {user.email} ({data['role'].value}, {data['plan']})")

        # ------------------------------------------------------------------
        # 3. Sample recipes and a community post
        # ------------------------------------------------------------------
        chef = users["chef@recipeforge.dev"]
        created_recipes: list[Recipe] = []
        for recipe_data in RECIPES:
            recipe = Recipe(author_id=chef.id, **recipe_data)
            session.add(recipe)
            await session.flush()
            created_recipes.append(recipe)
            print(f"   🍜 {recipe.title}")

        session.add(
            CommunityPost(
                author_id=chef.id,
                recipe_id=created_recipes[0].id,
                title="Six hours of broth, worth every minute",
                content="Char the onion and ginger properly; it makes the broth.",
            )
        )
        await session.commit()

        print()
        print("=" * 60)
        print("📊 Seed Summary")
        print("=" * 60)
        for data in DEMO_USERS:
            print(f"   {data['email']} / {data['password']}")
        print(f"   Recipes:       {len(created_recipes)}")
        print("   Posts:         1")
        print("=" * 60)
        print("🎉 Done! You can now log in at /api/v1/auth/login")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
