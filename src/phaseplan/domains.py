"""Fixed vocabularies: feature domains, conversation topics and their lookup tables."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class FeatureDomain(str, Enum):
    """Category a feature (and therefore a phase) belongs to."""

    SETUP = "setup"
    DATABASE = "database"
    AUTH = "auth"
    CORE_ENTITY = "core-entity"
    FEATURE = "feature"
    UI_COMPONENT = "ui-component"
    INTEGRATION = "integration"
    REAL_TIME = "real-time"
    STORAGE = "storage"
    NOTIFICATION = "notification"
    OFFLINE = "offline"
    SEARCH = "search"
    ANALYTICS = "analytics"
    ADMIN = "admin"
    UI_ROLE = "ui-role"
    TESTING = "testing"
    POLISH = "polish"


class ConversationTopic(str, Enum):
    """Topic label assigned to a chat message or segment."""

    INTRODUCTION = "introduction"
    FEATURE_DISCUSSION = "feature_discussion"
    TECHNICAL_SPECS = "technical_specs"
    UI_DESIGN = "ui_design"
    USER_ROLES = "user_roles"
    WORKFLOW = "workflow"
    DATA_MODEL = "data_model"
    INTEGRATION = "integration"
    CLARIFICATION = "clarification"
    GENERAL = "general"


# Checked first, in this order; each present domain gets one dedicated phase.
ALWAYS_SEPARATE_DOMAINS: Tuple[FeatureDomain, ...] = (
    FeatureDomain.AUTH,
    FeatureDomain.DATABASE,
    FeatureDomain.REAL_TIME,
    FeatureDomain.OFFLINE,
    FeatureDomain.INTEGRATION,
)

# Phase ordering within a plan.
DOMAIN_ORDER: Tuple[FeatureDomain, ...] = (
    FeatureDomain.SETUP,
    FeatureDomain.DATABASE,
    FeatureDomain.AUTH,
    FeatureDomain.CORE_ENTITY,
    FeatureDomain.FEATURE,
    FeatureDomain.UI_COMPONENT,
    FeatureDomain.INTEGRATION,
    FeatureDomain.STORAGE,
    FeatureDomain.REAL_TIME,
    FeatureDomain.NOTIFICATION,
    FeatureDomain.SEARCH,
    FeatureDomain.ANALYTICS,
    FeatureDomain.ADMIN,
    FeatureDomain.UI_ROLE,
    FeatureDomain.OFFLINE,
    FeatureDomain.TESTING,
    FeatureDomain.POLISH,
)

DOMAIN_DISPLAY_NAMES: Dict[FeatureDomain, str] = {
    FeatureDomain.SETUP: "Project Setup",
    FeatureDomain.DATABASE: "Database",
    FeatureDomain.AUTH: "Authentication",
    FeatureDomain.CORE_ENTITY: "Core Features",
    FeatureDomain.FEATURE: "Features",
    FeatureDomain.UI_COMPONENT: "UI Components",
    FeatureDomain.INTEGRATION: "Integrations",
    FeatureDomain.REAL_TIME: "Real-time",
    FeatureDomain.STORAGE: "Storage",
    FeatureDomain.NOTIFICATION: "Notifications",
    FeatureDomain.OFFLINE: "Offline Support",
    FeatureDomain.SEARCH: "Search",
    FeatureDomain.ANALYTICS: "Analytics",
    FeatureDomain.ADMIN: "Admin",
    FeatureDomain.UI_ROLE: "Role Views",
    FeatureDomain.TESTING: "Testing",
    FeatureDomain.POLISH: "Polish",
}


@dataclass(frozen=True, slots=True)
class DomainPattern:
    """Keyword table entry mapping matched phrases to a domain and base token cost."""

    domain: FeatureDomain
    keywords: Tuple[str, ...]
    base_tokens: int


SIMPLE_FEATURE_TOKENS = 1200
SETUP_PHASE_TOKENS = 2000

# Always-separate tables, in classification priority order.
SEPARATE_DOMAIN_PATTERNS: Tuple[DomainPattern, ...] = (
    DomainPattern(
        FeatureDomain.AUTH,
        (
            "auth",
            "authentication",
            "login",
            "log in",
            "signup",
            "sign up",
            "sign-up",
            "register",
            "oauth",
            "sso",
            "jwt",
            "session",
            "password",
        ),
        4000,
    ),
    DomainPattern(
        FeatureDomain.DATABASE,
        (
            "database",
            "schema",
            "migration",
            "orm",
            "prisma",
            "supabase",
            "postgres",
            "mysql",
            "mongodb",
        ),
        3500,
    ),
    DomainPattern(
        FeatureDomain.REAL_TIME,
        (
            "real-time",
            "realtime",
            "websocket",
            "socket",
            "live",
            "sync",
            "presence",
            "collaborative",
        ),
        4000,
    ),
    DomainPattern(
        FeatureDomain.OFFLINE,
        ("offline", "service worker", "pwa", "local storage", "indexeddb", "sync queue"),
        3500,
    ),
    DomainPattern(
        FeatureDomain.INTEGRATION,
        ("payment", "stripe", "paypal", "checkout", "billing", "subscription", "invoice"),
        4500,
    ),
    DomainPattern(
        FeatureDomain.INTEGRATION,
        ("map", "location", "geolocation", "third-party", "webhook"),
        2500,
    ),
)

# Remaining tables, checked after the always-separate ones.
DOMAIN_PATTERNS: Tuple[DomainPattern, ...] = (
    DomainPattern(
        FeatureDomain.STORAGE,
        ("file upload", "image upload", "storage", "media", "s3", "cloudinary", "upload", "attachment"),
        3500,
    ),
    DomainPattern(
        FeatureDomain.NOTIFICATION,
        ("push notification", "notification", "fcm", "email notification", "sms", "alert"),
        3000,
    ),
    DomainPattern(
        FeatureDomain.SEARCH,
        ("search", "elasticsearch", "algolia", "full-text", "autocomplete"),
        3000,
    ),
    DomainPattern(
        FeatureDomain.ADMIN,
        ("admin panel", "admin dashboard", "moderation", "user management", "cms", "admin"),
        4000,
    ),
    DomainPattern(
        FeatureDomain.ANALYTICS,
        ("analytics", "dashboard", "chart", "graph", "reporting", "metrics"),
        3500,
    ),
    DomainPattern(
        FeatureDomain.UI_ROLE,
        ("role-based view", "role view", "per-role", "per role", "role-specific"),
        2500,
    ),
    DomainPattern(
        FeatureDomain.CORE_ENTITY,
        ("crud", "entity", "entities", "records", "catalog", "inventory"),
        2500,
    ),
    DomainPattern(
        FeatureDomain.UI_COMPONENT,
        ("form", "multi-step", "wizard", "validation"),
        2000,
    ),
    DomainPattern(
        FeatureDomain.UI_COMPONENT,
        ("table", "data grid", "pagination", "sorting"),
        2200,
    ),
    DomainPattern(
        FeatureDomain.UI_COMPONENT,
        ("drag", "drop", "sortable", "reorder"),
        2500,
    ),
    DomainPattern(FeatureDomain.FEATURE, ("calendar", "date picker", "scheduling"), 2000),
    DomainPattern(FeatureDomain.FEATURE, ("export", "pdf", "csv", "download"), 1800),
    DomainPattern(FeatureDomain.FEATURE, ("import", "bulk", "batch"), 2000),
    DomainPattern(FeatureDomain.FEATURE, ("filter", "advanced filter", "faceted"), 1800),
    DomainPattern(FeatureDomain.FEATURE, ("comment", "reply", "thread"), 2200),
    DomainPattern(FeatureDomain.FEATURE, ("rating", "review", "feedback"), 1500),
    DomainPattern(
        FeatureDomain.TESTING,
        ("unit test", "test suite", "e2e", "end-to-end test", "test coverage"),
        2000,
    ),
    DomainPattern(
        FeatureDomain.POLISH,
        ("animation", "transition", "polish", "accessibility", "loading state", "empty state"),
        1500,
    ),
)

# Feature text hints that imply a dependency on earlier infrastructure phases.
DATABASE_NEED_KEYWORDS: Tuple[str, ...] = ("save", "store", "persist", "history", "database", "record")
AUTH_NEED_KEYWORDS: Tuple[str, ...] = ("user", "account", "profile", "my ", "personal")

SETUP_DELIVERABLES: Tuple[str, ...] = (
    "Folder structure and organization",
    "Package.json with dependencies",
    "TypeScript configuration",
    "Base styling",
    "Core layout components",
    "Routing configuration",
)

SETUP_TEST_CRITERIA: Tuple[str, ...] = (
    "Project runs without errors",
    "Base layout renders correctly",
    "Navigation works between routes",
    "No console errors",
)

DOMAIN_TEST_CRITERIA: Dict[FeatureDomain, Tuple[str, ...]] = {
    FeatureDomain.AUTH: (
        "Login flow works correctly",
        "Logout clears session",
        "Protected routes redirect unauthenticated users",
    ),
    FeatureDomain.DATABASE: (
        "Schema is valid",
        "Types are generated",
        "Queries execute without errors",
    ),
    FeatureDomain.STORAGE: (
        "Files can be uploaded",
        "Files can be retrieved",
        "Invalid files are rejected",
    ),
    FeatureDomain.REAL_TIME: (
        "WebSocket connection establishes",
        "Real-time updates are received",
        "Reconnection works on disconnect",
    ),
}

# Topics that carry context for each phase domain.
PHASE_TOPICS: Dict[FeatureDomain, Tuple[ConversationTopic, ...]] = {
    FeatureDomain.SETUP: (ConversationTopic.INTRODUCTION, ConversationTopic.GENERAL),
    FeatureDomain.DATABASE: (ConversationTopic.DATA_MODEL, ConversationTopic.TECHNICAL_SPECS),
    FeatureDomain.AUTH: (ConversationTopic.USER_ROLES, ConversationTopic.TECHNICAL_SPECS),
    FeatureDomain.CORE_ENTITY: (ConversationTopic.DATA_MODEL, ConversationTopic.FEATURE_DISCUSSION),
    FeatureDomain.FEATURE: (
        ConversationTopic.FEATURE_DISCUSSION,
        ConversationTopic.WORKFLOW,
        ConversationTopic.UI_DESIGN,
    ),
    FeatureDomain.UI_COMPONENT: (ConversationTopic.UI_DESIGN, ConversationTopic.FEATURE_DISCUSSION),
    FeatureDomain.INTEGRATION: (ConversationTopic.INTEGRATION, ConversationTopic.TECHNICAL_SPECS),
    FeatureDomain.REAL_TIME: (ConversationTopic.TECHNICAL_SPECS, ConversationTopic.FEATURE_DISCUSSION),
    FeatureDomain.STORAGE: (ConversationTopic.TECHNICAL_SPECS, ConversationTopic.FEATURE_DISCUSSION),
    FeatureDomain.NOTIFICATION: (ConversationTopic.FEATURE_DISCUSSION, ConversationTopic.WORKFLOW),
    FeatureDomain.OFFLINE: (ConversationTopic.TECHNICAL_SPECS, ConversationTopic.FEATURE_DISCUSSION),
    FeatureDomain.SEARCH: (ConversationTopic.FEATURE_DISCUSSION, ConversationTopic.TECHNICAL_SPECS),
    FeatureDomain.ANALYTICS: (ConversationTopic.FEATURE_DISCUSSION, ConversationTopic.DATA_MODEL),
    FeatureDomain.ADMIN: (ConversationTopic.USER_ROLES, ConversationTopic.FEATURE_DISCUSSION),
    FeatureDomain.UI_ROLE: (ConversationTopic.USER_ROLES, ConversationTopic.UI_DESIGN),
    FeatureDomain.TESTING: (ConversationTopic.TECHNICAL_SPECS, ConversationTopic.GENERAL),
    FeatureDomain.POLISH: (ConversationTopic.UI_DESIGN, ConversationTopic.GENERAL),
}

# Canned similarity queries for the optional semantic lookup.
PHASE_QUERIES: Dict[FeatureDomain, str] = {
    FeatureDomain.SETUP: "project setup configuration initialization folder structure dependencies",
    FeatureDomain.DATABASE: "database schema data model tables fields relationships constraints migrations",
    FeatureDomain.AUTH: "user authentication login register roles permissions security session jwt oauth",
    FeatureDomain.CORE_ENTITY: "main entities business objects data structure core features",
    FeatureDomain.FEATURE: "feature implementation functionality user stories acceptance criteria validation",
    FeatureDomain.UI_COMPONENT: "user interface components buttons forms modals navigation design",
    FeatureDomain.INTEGRATION: "API integration external services webhooks third-party connections",
    FeatureDomain.REAL_TIME: "real-time websocket live updates synchronization notifications",
    FeatureDomain.STORAGE: "file upload storage media images documents attachments s3 blob",
    FeatureDomain.NOTIFICATION: "push notification email alerts messages in-app notifications",
    FeatureDomain.OFFLINE: "offline support service worker local storage sync queue",
    FeatureDomain.SEARCH: "search filtering autocomplete full-text indexing queries",
    FeatureDomain.ANALYTICS: "analytics dashboard charts metrics reporting data visualization",
    FeatureDomain.ADMIN: "admin panel administration moderation user management settings",
    FeatureDomain.UI_ROLE: "role-specific views dashboards access control permissions",
    FeatureDomain.TESTING: "testing tests fixtures mocks unit tests integration tests",
    FeatureDomain.POLISH: "polish animations transitions loading states error handling UX",
}

# Keywords used to filter extracted records down to one phase.
PHASE_KEYWORDS: Dict[FeatureDomain, Tuple[str, ...]] = {
    FeatureDomain.SETUP: ("setup", "config", "initialize", "project", "structure", "dependencies"),
    FeatureDomain.DATABASE: ("database", "schema", "table", "field", "relationship", "model", "data"),
    FeatureDomain.AUTH: ("login", "register", "password", "role", "permission", "session", "auth"),
    FeatureDomain.CORE_ENTITY: ("entity", "model", "object", "core", "main", "primary"),
    FeatureDomain.FEATURE: ("feature", "functionality", "user story", "acceptance", "validation"),
    FeatureDomain.UI_COMPONENT: ("button", "form", "modal", "component", "ui", "design", "layout"),
    FeatureDomain.INTEGRATION: ("api", "integration", "webhook", "external", "service", "third-party"),
    FeatureDomain.REAL_TIME: ("real-time", "websocket", "live", "sync", "push", "instant"),
    FeatureDomain.STORAGE: ("upload", "file", "image", "storage", "media", "attachment"),
    FeatureDomain.NOTIFICATION: ("notification", "alert", "email", "push", "message"),
    FeatureDomain.OFFLINE: ("offline", "sync", "local", "cache", "service worker"),
    FeatureDomain.SEARCH: ("search", "filter", "query", "find", "autocomplete"),
    FeatureDomain.ANALYTICS: ("analytics", "dashboard", "chart", "metric", "report"),
    FeatureDomain.ADMIN: ("admin", "manage", "moderate", "settings", "configuration"),
    FeatureDomain.UI_ROLE: ("dashboard", "view", "role", "access", "permission"),
    FeatureDomain.TESTING: ("test", "mock", "fixture", "assertion"),
    FeatureDomain.POLISH: ("animation", "transition", "loading", "error", "empty state"),
}

# Technical spec categories relevant to each phase.
PHASE_TECH_CATEGORIES: Dict[FeatureDomain, Tuple[str, ...]] = {
    FeatureDomain.SETUP: ("other",),
    FeatureDomain.DATABASE: ("database",),
    FeatureDomain.AUTH: ("auth",),
    FeatureDomain.CORE_ENTITY: ("database",),
    FeatureDomain.FEATURE: ("api", "database"),
    FeatureDomain.UI_COMPONENT: (),
    FeatureDomain.INTEGRATION: ("api",),
    FeatureDomain.REAL_TIME: ("realtime",),
    FeatureDomain.STORAGE: ("storage",),
    FeatureDomain.NOTIFICATION: ("api",),
    FeatureDomain.OFFLINE: ("storage",),
    FeatureDomain.SEARCH: ("database", "api"),
    FeatureDomain.ANALYTICS: ("database", "api"),
    FeatureDomain.ADMIN: ("auth", "database"),
    FeatureDomain.UI_ROLE: ("auth",),
    FeatureDomain.TESTING: (),
    FeatureDomain.POLISH: (),
}


def display_name(domain: FeatureDomain) -> str:
    return DOMAIN_DISPLAY_NAMES.get(domain, domain.value.replace("-", " ").title())


def is_always_separate(domain: FeatureDomain) -> bool:
    return domain in ALWAYS_SEPARATE_DOMAINS
