"""LLM-backed recipe generation through LiteLLM."""

import json
import logging
import os

import litellm
from pydantic import BaseModel, Field, ValidationError

from recipe_forge.config import settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a professional chef who writes clear, home-cook friendly recipes.

Reply with a single JSON object and nothing else, using exactly these keys:
  "title": string,
  "description": string,
  "ingredients": list of strings, each with quantity and unit,
  "instructions": list of strings, one step each,
  "cuisine": string or null,
  "prep_time_minutes": integer or null,
  "cook_time_minutes": integer or null,
  "servings": integer or null

Use only the listed ingredients plus common pantry staples (salt, pepper, oil, water).
Respect every dietary restriction given."""

SUGGESTIONS_PROMPT = """You are a chef reviewing a home cook's recipe.
Reply with a JSON object {"suggestions": [...]} holding 3 to 5 short, concrete improvement tips."""


class RecipeGenerationError(Exception):
    """The model call failed or returned something that is not a recipe."""


class GeneratedRecipe(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    ingredients: list[str] = Field(..., min_length=1)
    instructions: list[str] = Field(..., min_length=1)
    cuisine: str | None = None
    prep_time_minutes: int | None = Field(None, ge=0)
    cook_time_minutes: int | None = Field(None, ge=0)
    servings: int | None = Field(None, ge=1)


def build_user_prompt(
    ingredients: list[str],
    cuisine: str | None = None,
    dietary_restrictions: list[str] | None = None,
    servings: int | None = None,
) -> str:
    lines = [f"Ingredients: {', '.join(ingredients)}"]
    if cuisine:
        lines.append(f"Cuisine: {cuisine}")
    if dietary_restrictions:
        lines.append(f"Dietary restrictions: {', '.join(dietary_restrictions)}")
    if servings:
        lines.append(f"Servings: {servings}")
    return "\n".join(lines)


def _export_provider_keys() -> None:
    # LiteLLM reads provider keys from the environment
    if settings.gemini_api_key:
        os.environ["GEMINI_API_KEY"] = settings.gemini_api_key
    if settings.openai_api_key:
        os.environ["OPENAI_API_KEY"] = settings.openai_api_key


async def _complete_json(system: str, user: str) -> dict:
    _export_provider_keys()
    try:
        response = await litellm.acompletion(
            model=settings.default_llm_model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=settings.llm_temperature,
            timeout=settings.llm_timeout_seconds,
            response_format={"type": "json_object"},
        )
    except Exception as exc:  # litellm maps provider errors onto many exception types
        logger.error("LLM call failed (%s): %s", settings.default_llm_model, exc)
        raise RecipeGenerationError("Recipe model is unavailable") from exc

    content = response.choices[0].message.content or ""
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        logger.warning("LLM returned non-JSON content: %.200s", content)
        raise RecipeGenerationError("Recipe model returned malformed output") from exc


async def generate_recipe(
    ingredients: list[str],
    cuisine: str | None = None,
    dietary_restrictions: list[str] | None = None,
    servings: int | None = None,
) -> GeneratedRecipe:
    """Ask the configured model for a recipe built from ``ingredients``.

    Raises:
        RecipeGenerationError: on provider failure or an invalid reply.
    """
    data = await _complete_json(
        SYSTEM_PROMPT,
        build_user_prompt(ingredients, cuisine, dietary_restrictions, servings),
    )
    try:
        return GeneratedRecipe.model_validate(data)
    except ValidationError as exc:
        logger.warning("LLM recipe failed validation: %s", exc.errors()[:3])
        raise RecipeGenerationError("Recipe model returned an incomplete recipe") from exc


async def suggest_improvements(title: str, ingredients: list[str], instructions: list[str]) -> list[str]:
    """Short improvement tips for an existing recipe."""
    recipe_text = "\n".join(
        [f"Title: {title}", "Ingredients:", *ingredients, "Steps:", *instructions]
    )
    data = await _complete_json(SUGGESTIONS_PROMPT, recipe_text)
    suggestions = data.get("suggestions") if isinstance(data, dict) else None
    if not isinstance(suggestions, list):
        raise RecipeGenerationError("Recipe model returned no suggestions")
    return [str(s) for s in suggestions]
