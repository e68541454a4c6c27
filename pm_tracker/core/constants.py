"""
System-wide constants for the PM Tracker service.
"""

from enum import Enum


# =============================================================================
# Enums
# =============================================================================


class Persona(str, Enum):
    """Personas a user story can be written for."""

    MEMBER = "member"
    ADMIN = "admin"
    STAFF = "staff"
    BUSINESS = "business"
    GUEST = "guest"


class Priority(str, Enum):
    """Priority levels shared by epics, features, stories and tasks."""

    P0 = "P0"
    P1 = "P1"
    P2 = "P2"


class StoryStatus(str, Enum):
    """User story workflow states."""

    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    TESTING = "Testing"
    DONE = "Done"
    BLOCKED = "Blocked"


class WorkStatus(str, Enum):
    """Epic and feature workflow states."""

    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    DONE = "Done"
    ON_HOLD = "On Hold"


class PlatformId(str, Enum):
    """Implementation platforms tasks are generated for."""

    A = "A"
    B = "B"
    C = "C"
    D = "D"


class ConsolidationAction(str, Enum):
    """What to do with a freshly generated story."""

    CREATE_NEW = "create_new"
    MERGE_WITH_EXISTING = "merge_with_existing"
    SKIP = "skip"


class ConsolidationStatus(str, Enum):
    """Whether the consolidation result came from a real comparison."""

    SUCCESS = "success"
    FALLBACK = "fallback"


class Wave(str, Enum):
    """Execution-readiness tier of a generated task."""

    READY = "ready"
    BLOCKED = "blocked"
    LATER = "later"


class CategorizationRecommendation(str, Enum):
    """Outcome of matching a story against an epic's features."""

    EXISTING = "existing"
    NEW = "new"
    NONE = "none"


class AssumptionCategory(str, Enum):
    """Areas an assumption made during spec generation can touch."""

    ARCHITECTURE = "architecture"
    PERMISSIONS = "permissions"
    DATA_MODEL = "data_model"
    PERFORMANCE = "performance"
    INTEGRATION = "integration"
    UX = "ux"
    SECURITY = "security"
    INFRASTRUCTURE = "infrastructure"


class AssumptionConfidence(str, Enum):
    """Confidence attached to a single assumption."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ReadinessStatus(str, Enum):
    """Overall readiness of a generated spec set."""

    READY = "ready"
    REVIEW = "review"
    RESEARCH = "research"
    NOT_READY = "not_ready"


# =============================================================================
# API Constants
# =============================================================================

API_VERSION = "v1"
API_PREFIX = f"/api/{API_VERSION}"

# =============================================================================
# Platform Constants
# =============================================================================

PLATFORM_CONFIG: dict[PlatformId, dict[str, str]] = {
    PlatformId.A: {"name": "Backend", "description": "APIs, services and data layer"},
    PlatformId.B: {"name": "Mobile App", "description": "Member-facing mobile application"},
    PlatformId.C: {"name": "Admin Dashboard", "description": "Staff and admin web dashboard"},
    PlatformId.D: {"name": "Infrastructure", "description": "Deployment, CI/CD and cloud resources"},
}

# Display order for grouped task views
PLATFORM_ORDER = (PlatformId.A, PlatformId.B, PlatformId.C, PlatformId.D)

# Score per task confidence, averaged into a spec set's overall_confidence
TASK_CONFIDENCE_SCORES = {
    AssumptionConfidence.HIGH: 90,
    AssumptionConfidence.MEDIUM: 70,
    AssumptionConfidence.LOW: 50,
}

# Checklist items every cross-platform definition of done ends with
INTEGRATION_DOD_CHECKS = (
    "All API contracts match between platforms",
    "Shared TypeScript types compile without errors",
    "No runtime type mismatches in integration",
)

# =============================================================================
# Task Wave Constants
# =============================================================================

WAVE_ORDER = (Wave.READY, Wave.BLOCKED, Wave.LATER)

WAVE_NUMBERS = {
    Wave.READY: 1,
    Wave.BLOCKED: 2,
    Wave.LATER: 3,
}

# Tasks with at most this many in-batch dependencies are "blocked", more is "later"
BLOCKED_MAX_DEPENDENCIES = 2

PRIORITY_ORDER = (Priority.P0, Priority.P1, Priority.P2)

DEFAULT_PRIORITY_FILTER = frozenset({Priority.P0, Priority.P1})

# =============================================================================
# Readiness Constants
# =============================================================================

# overall_confidence lower bounds, checked in order
READINESS_THRESHOLDS = (
    (80, ReadinessStatus.READY),
    (60, ReadinessStatus.REVIEW),
    (40, ReadinessStatus.RESEARCH),
)

# =============================================================================
# Story Generation Constants
# =============================================================================

NARRATIVE_REQUIRED_PHRASES = ("as a", "i want")

# Truncation length for narratives in log lines
NARRATIVE_PREVIEW_LENGTH = 50

# =============================================================================
# Similarity Constants
# =============================================================================

# Words shorter than this carry no meaning for keyword similarity
SIMILARITY_MIN_WORD_LENGTH = 4

SIMILARITY_STOPWORDS = frozenset({
    "want", "that", "this", "with", "from", "have", "been", "being",
    "would", "could", "should", "member", "admin", "staff", "user",
})

# Keyword similarity (0-100) at which an existing story is flagged as similar
SIMILAR_STORY_THRESHOLD = 40

# =============================================================================
# Feature Generation Constants
# =============================================================================

FALLBACK_FEATURE_REASONING = (
    "Features generated using fallback method (AI was unavailable). "
    "Review and adjust as needed."
)
