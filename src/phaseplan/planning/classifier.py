"""Deterministic keyword classification of features into domains."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence, Tuple

from ..domains import (
    AUTH_NEED_KEYWORDS,
    DATABASE_NEED_KEYWORDS,
    DOMAIN_PATTERNS,
    SEPARATE_DOMAIN_PATTERNS,
    SIMPLE_FEATURE_TOKENS,
    DomainPattern,
    FeatureDomain,
)
from ..schema import Feature, Priority, TechnicalRequirements
from ..tokens import estimate_tokens

LOGGER = logging.getLogger(__name__)


def keyword_pattern(keyword: str) -> Pattern[str]:
    """Compile ``keyword`` so it only matches at the start of a word."""
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword.lower()))


def contains_keyword(text: str, keywords: Sequence[str]) -> bool:
    lowered = text.lower()
    return any(keyword_pattern(keyword).search(lowered) for keyword in keywords)


_COMPILED_TABLES: Tuple[Tuple[DomainPattern, Tuple[Tuple[str, Pattern[str]], ...]], ...] = tuple(
    (entry, tuple((keyword, keyword_pattern(keyword)) for keyword in entry.keywords))
    for entry in (*SEPARATE_DOMAIN_PATTERNS, *DOMAIN_PATTERNS)
)


@dataclass(slots=True)
class ClassifiedFeature:
    """Feature annotated with its domain, cost estimate and declared needs."""

    feature: Feature
    domain: FeatureDomain
    matched_keywords: Tuple[str, ...]
    token_estimate: int
    needs_database: bool = False
    needs_auth: bool = False
    implicit: bool = False

    @property
    def priority(self) -> Priority:
        return self.feature.priority


@dataclass(frozen=True, slots=True)
class DomainMatch:
    domain: FeatureDomain
    keywords: Tuple[str, ...]
    base_tokens: int


def classify_text(text: str) -> DomainMatch:
    """Return the first domain table matching ``text``.

    Always-separate tables are checked first in their fixed priority order, so
    a feature mentioning both "login" and "dashboard" lands in ``auth``.
    """
    lowered = text.lower()
    for entry, compiled in _COMPILED_TABLES:
        hits = tuple(keyword for keyword, pattern in compiled if pattern.search(lowered))
        if hits:
            return DomainMatch(entry.domain, hits, entry.base_tokens)
    return DomainMatch(FeatureDomain.FEATURE, (), SIMPLE_FEATURE_TOKENS)


def feature_text(feature: Feature) -> str:
    return f"{feature.name} {feature.description}".strip()


def classify_feature(
    feature: Feature,
    technical: Optional[TechnicalRequirements] = None,
) -> ClassifiedFeature:
    text = feature_text(feature)
    match = classify_text(text)
    flags = technical or TechnicalRequirements()
    classified = ClassifiedFeature(
        feature=feature,
        domain=match.domain,
        matched_keywords=match.keywords,
        token_estimate=match.base_tokens + estimate_tokens(text),
        needs_database=flags.needs_database or contains_keyword(text, DATABASE_NEED_KEYWORDS),
        needs_auth=flags.needs_auth or contains_keyword(text, AUTH_NEED_KEYWORDS),
    )
    LOGGER.debug(
        "Classified feature %s as %s (keywords=%s)",
        feature.id,
        classified.domain.value,
        ", ".join(match.keywords) or "-",
    )
    return classified


def classify_features(
    features: Sequence[Feature],
    technical: Optional[TechnicalRequirements] = None,
) -> List[ClassifiedFeature]:
    return [classify_feature(feature, technical) for feature in features]


_IMPLICIT_FEATURES: Tuple[Tuple[str, FeatureDomain, Feature], ...] = (
    (
        "needs_auth",
        FeatureDomain.AUTH,
        Feature(
            id="implicit-auth",
            name="Authentication System",
            description="User login, signup, and session management",
            priority=Priority.HIGH,
        ),
    ),
    (
        "needs_database",
        FeatureDomain.DATABASE,
        Feature(
            id="implicit-database",
            name="Database Setup",
            description="Database schema, migrations, and data access layer",
            priority=Priority.HIGH,
        ),
    ),
    (
        "needs_realtime",
        FeatureDomain.REAL_TIME,
        Feature(
            id="implicit-realtime",
            name="Real-time Updates",
            description="Live data synchronization across connected clients",
        ),
    ),
    (
        "needs_file_upload",
        FeatureDomain.STORAGE,
        Feature(
            id="implicit-storage",
            name="File Storage",
            description="File upload, storage, and retrieval",
        ),
    ),
    (
        "needs_api",
        FeatureDomain.INTEGRATION,
        Feature(
            id="implicit-api",
            name="API Integration",
            description="Connections to external services and APIs",
        ),
    ),
    (
        "needs_offline_support",
        FeatureDomain.OFFLINE,
        Feature(
            id="implicit-offline",
            name="Offline Support",
            description="Offline caching and background sync",
        ),
    ),
)


def implicit_features(
    technical: TechnicalRequirements,
    existing: Sequence[ClassifiedFeature],
) -> List[ClassifiedFeature]:
    """Synthesize features implied by technical flags when no feature covers them."""
    covered = {item.domain for item in existing}
    taken_ids = {item.feature.id for item in existing}
    implied: List[ClassifiedFeature] = []
    for flag, domain, feature in _IMPLICIT_FEATURES:
        if not getattr(technical, flag) or domain in covered or feature.id in taken_ids:
            continue
        text = feature_text(feature)
        base = classify_text(text)
        implied.append(
            ClassifiedFeature(
                feature=feature.model_copy(),
                domain=domain,
                matched_keywords=base.keywords,
                token_estimate=(base.base_tokens if base.domain == domain else SIMPLE_FEATURE_TOKENS)
                + estimate_tokens(text),
                needs_database=technical.needs_database and domain is not FeatureDomain.DATABASE,
                needs_auth=False,
                implicit=True,
            )
        )
        covered.add(domain)
    return implied
