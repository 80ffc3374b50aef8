from __future__ import annotations

from phaseplan.domains import FeatureDomain
from phaseplan.planning.classifier import (
    classify_feature,
    classify_features,
    classify_text,
    contains_keyword,
    implicit_features,
)
from phaseplan.schema import Feature, Priority, TechnicalRequirements


def test_classify_text_prefers_always_separate_tables() -> None:
    match = classify_text("Login dashboard with charts")

    assert match.domain is FeatureDomain.AUTH
    assert "login" in match.keywords
    assert match.base_tokens == 4000


def test_classify_text_falls_back_to_generic_feature() -> None:
    match = classify_text("Recipe Notes")

    assert match.domain is FeatureDomain.FEATURE
    assert match.keywords == ()
    assert match.base_tokens == 1200


def test_keywords_only_match_at_word_start() -> None:
    assert classify_text("Contact form").domain is FeatureDomain.UI_COMPONENT
    assert classify_text("Deliver packages").domain is FeatureDomain.FEATURE
    assert contains_keyword("Reformat text", ("form",)) is False
    assert contains_keyword("Sign-up form", ("form",)) is True


def test_admin_table_is_checked_before_analytics() -> None:
    assert classify_text("Admin dashboard").domain is FeatureDomain.ADMIN
    assert classify_text("Sales dashboard").domain is FeatureDomain.ANALYTICS


def test_classify_feature_estimates_tokens_from_base_and_text() -> None:
    feature = Feature(id="login", name="Login")

    classified = classify_feature(feature)

    assert classified.domain is FeatureDomain.AUTH
    assert classified.token_estimate == 4000 + 2
    assert classified.needs_database is False
    assert classified.needs_auth is False


def test_classify_feature_detects_needs_from_text_and_flags() -> None:
    saved = classify_feature(Feature(id="fav", name="Save favorites"))
    personal = classify_feature(Feature(id="mine", name="My recipes"))
    flagged = classify_feature(
        Feature(id="plain", name="Recipe Notes"),
        TechnicalRequirements(needs_database=True, needs_auth=True),
    )

    assert saved.needs_database is True
    assert saved.needs_auth is False
    assert personal.needs_auth is True
    assert flagged.needs_database is True
    assert flagged.needs_auth is True


def test_classified_feature_exposes_priority() -> None:
    classified = classify_feature(Feature(id="x", name="Export", priority=Priority.HIGH))

    assert classified.priority is Priority.HIGH
    assert classified.domain is FeatureDomain.FEATURE


def test_implicit_features_fill_uncovered_flagged_domains() -> None:
    technical = TechnicalRequirements(needs_auth=True, needs_database=True, needs_file_upload=True)
    existing = classify_features([Feature(id="login", name="Login page")], technical)

    implied = implicit_features(technical, existing)

    ids = [item.feature.id for item in implied]
    assert ids == ["implicit-database", "implicit-storage"]
    assert all(item.implicit for item in implied)
    assert implied[0].domain is FeatureDomain.DATABASE
    assert implied[0].feature.name == "Database Setup"
    assert implied[1].domain is FeatureDomain.STORAGE
    assert implied[1].needs_database is True


def test_implicit_features_without_flags_is_empty() -> None:
    assert implicit_features(TechnicalRequirements(), []) == []
