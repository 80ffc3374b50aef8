"""Typed records exchanged between the planner, the context extractor and callers."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .domains import ConversationTopic, FeatureDomain


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling and camelCase wire names."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=False,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Return the JSON-ready mapping using camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class Priority(str, Enum):
    """Relative importance of a feature."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Importance(str, Enum):
    """Relevance ranking for a conversation segment."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PlanComplexity(str, Enum):
    """Coarse plan size label derived from the phase count."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    VERY_COMPLEX = "very-complex"


class PhaseStatus(str, Enum):
    """Lifecycle states for a phase during execution."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"
    FAILED = "failed"


class Feature(RecordModel):
    """Single capability requested for the app."""

    id: str
    name: str
    description: str = ""
    priority: Priority = Priority.MEDIUM


class TechnicalRequirements(RecordModel):
    """Infrastructure flags gathered by the concept wizard."""

    needs_auth: bool = False
    auth_type: Optional[str] = None
    needs_database: bool = False
    needs_realtime: bool = False
    needs_file_upload: bool = False
    needs_api: bool = False
    needs_offline_support: bool = False


class UserRole(RecordModel):
    name: str
    capabilities: List[str] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)


class Workflow(RecordModel):
    name: str
    description: str = ""
    steps: List[str] = Field(default_factory=list)
    involved_roles: List[str] = Field(default_factory=list)


class AppConcept(RecordModel):
    """Finalized app description that seeds planning."""

    name: str
    description: str = ""
    purpose: Optional[str] = None
    target_users: Optional[str] = None
    features: List[Feature] = Field(default_factory=list)
    technical: TechnicalRequirements = Field(default_factory=TechnicalRequirements)
    roles: List[UserRole] = Field(default_factory=list)
    workflows: List[Workflow] = Field(default_factory=list)


class ChatMessage(RecordModel):
    """One entry of the ordered conversation log."""

    role: Literal["user", "assistant", "system"]
    content: str


class Phase(RecordModel):
    """One ordered build step of a plan."""

    number: int
    name: str
    description: str
    domain: FeatureDomain
    features: List[Feature] = Field(default_factory=list)
    deliverables: List[str] = Field(default_factory=list)
    estimated_time: str
    dependencies: List[int] = Field(default_factory=list)
    token_estimate: int
    test_criteria: List[str] = Field(default_factory=list)
    status: PhaseStatus = PhaseStatus.PENDING

    def to_contract(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "name": self.name,
            "description": self.description,
            "features": [feature.name for feature in self.features],
            "estimatedTime": self.estimated_time,
            "dependencies": list(self.dependencies),
            "testCriteria": list(self.test_criteria),
        }


class DynamicPhasePlan(RecordModel):
    """Ordered phase plan generated from an app concept."""

    plan_id: str
    app_name: str
    total_phases: int
    phases: List[Phase]
    complexity: PlanComplexity
    estimated_total_time: str
    estimated_total_tokens: int = 0
    warnings: List[str] = Field(default_factory=list)

    def phase(self, number: int) -> Phase:
        """Return the phase numbered ``number`` or raise ``KeyError``."""
        for phase in self.phases:
            if phase.number == number:
                return phase
        raise KeyError(f"Plan has no phase {number}")

    def to_contract(self) -> Dict[str, Any]:
        """Return the externally visible plan JSON."""
        return {
            "totalPhases": self.total_phases,
            "phases": [phase.to_contract() for phase in self.phases],
            "complexity": self.complexity.value,
            "estimatedTotalTime": self.estimated_total_time,
        }


class SegmentData(RecordModel):
    """Pattern matches mined from one conversation segment."""

    features: List[str] = Field(default_factory=list)
    roles: List[str] = Field(default_factory=list)
    technical_decisions: List[str] = Field(default_factory=list)
    ui_elements: List[str] = Field(default_factory=list)
    data_models: List[str] = Field(default_factory=list)
    integrations: List[str] = Field(default_factory=list)
    questions: List[str] = Field(default_factory=list)
    constraints: List[str] = Field(default_factory=list)


class ConversationSegment(RecordModel):
    """Contiguous run of messages sharing one topic."""

    id: str
    topic: ConversationTopic
    start_index: int
    end_index: int
    messages: List[ChatMessage] = Field(default_factory=list)
    summary: str = ""
    key_points: List[str] = Field(default_factory=list)
    extracted_data: SegmentData = Field(default_factory=SegmentData)
    importance: Importance = Importance.LOW
    token_estimate: int = 0


class ExtractedFeature(RecordModel):
    name: str
    description: str = ""
    user_stories: List[str] = Field(default_factory=list)
    acceptance_criteria: List[str] = Field(default_factory=list)
    technical_notes: List[str] = Field(default_factory=list)
    priority: Priority = Priority.MEDIUM
    mentioned_in: List[int] = Field(default_factory=list)


class ExtractedWorkflow(RecordModel):
    name: str
    steps: List[str] = Field(default_factory=list)
    involved_roles: List[str] = Field(default_factory=list)
    source_index: int = 0


class ExtractedTechnicalSpec(RecordModel):
    category: Literal["auth", "database", "api", "realtime", "storage", "other"]
    value: str
    context: str = ""
    source_index: int = 0


class StructuredContext(RecordModel):
    """Conversation-wide structured records used as long-term memory."""

    features: List[ExtractedFeature] = Field(default_factory=list)
    workflows: List[ExtractedWorkflow] = Field(default_factory=list)
    technical_specs: List[ExtractedTechnicalSpec] = Field(default_factory=list)
    decisions: List[str] = Field(default_factory=list)
    open_questions: List[str] = Field(default_factory=list)


class PhaseContext(RecordModel):
    """Bounded, phase-specific slice of the conversation."""

    phase_type: FeatureDomain
    relevant_segments: List[ConversationSegment] = Field(default_factory=list)
    extracted_requirements: List[str] = Field(default_factory=list)
    user_decisions: List[str] = Field(default_factory=list)
    technical_notes: List[str] = Field(default_factory=list)
    feature_specs: List[ExtractedFeature] = Field(default_factory=list)
    workflow_specs: List[ExtractedWorkflow] = Field(default_factory=list)
    technical_specs: List[ExtractedTechnicalSpec] = Field(default_factory=list)
    validation_rules: List[str] = Field(default_factory=list)
    ui_patterns: List[str] = Field(default_factory=list)
    context_summary: str = ""
    token_estimate: int = 0
