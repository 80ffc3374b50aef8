from __future__ import annotations

import sys
from pathlib import Path
from typing import List

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from phaseplan.schema import AppConcept, ChatMessage, Feature, TechnicalRequirements  # noqa: E402


@pytest.fixture()
def simple_concept() -> AppConcept:
    """Two generic features and no technical flags."""

    return AppConcept(
        name="Pantry Helper",
        description="Keep track of kitchen ideas.",
        features=[
            Feature(id="notes", name="Recipe Notes", description="Jot down recipe ideas"),
            Feature(id="list", name="Shopping List", description="Track groceries to buy"),
        ],
    )


@pytest.fixture()
def auth_db_concept() -> AppConcept:
    """Generic features with auth and database flags but no matching features."""

    return AppConcept(
        name="Pantry Cloud",
        description="Kitchen ideas synced to an account.",
        features=[
            Feature(id="notes", name="Recipe Notes", description="Jot down recipe ideas"),
            Feature(id="list", name="Shopping List", description="Track groceries to buy"),
        ],
        technical=TechnicalRequirements(needs_auth=True, needs_database=True),
    )


@pytest.fixture()
def ui_conversation() -> List[ChatMessage]:
    """Conversation that only talks about visual styling."""

    return [
        ChatMessage(role="user", content="Make the colors warm and the fonts large."),
        ChatMessage(role="assistant", content="Sure, warm colors with large fonts and generous spacing."),
        ChatMessage(role="user", content="I like a dark mode theme too."),
        ChatMessage(role="assistant", content="Dark mode theme noted, with matching colors."),
    ]


@pytest.fixture()
def planning_conversation() -> List[ChatMessage]:
    """Conversation covering features, data model and auth choices."""

    return [
        ChatMessage(role="user", content="Hi, I want to build a recipe sharing app."),
        ChatMessage(
            role="assistant",
            content="Great, let's start. What kind of app features do you need?",
        ),
        ChatMessage(
            role="user",
            content=(
                "Users can save recipes and share them. "
                "Add a recipe search feature so people find dishes quickly."
            ),
        ),
        ChatMessage(
            role="assistant",
            content="Users should be able to browse by cuisine. The app should also support favorites.",
        ),
        ChatMessage(
            role="user",
            content=(
                "Each recipe table needs a title field and an ingredients field. "
                "Store the schema in PostgreSQL with a relationship to users."
            ),
        ),
        ChatMessage(
            role="assistant",
            content=(
                "Data model: recipes table with title and ingredients fields, "
                "plus a foreign key to the users table."
            ),
        ),
        ChatMessage(
            role="user",
            content="For login use JWT sessions. We decided to use OAuth with Google as well.",
        ),
        ChatMessage(
            role="assistant",
            content="Confirmed: JWT session tokens and OAuth sign in via the auth API endpoint.",
        ),
    ]
