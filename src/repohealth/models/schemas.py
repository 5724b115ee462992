"""Pydantic models for evaluation results."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Platform(str, Enum):
    """Source code hosting platforms."""

    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    OTHER = "other"


class Category(str, Enum):
    """Metric categories."""

    ACTIVITY = "activity"
    COMMUNITY = "community"
    MAINTENANCE = "maintenance"
    DOCUMENTATION = "documentation"
    SECURITY = "security"


class MetricKind(str, Enum):
    """How a metric's raw value is scored."""

    NUMERIC = "numeric"  # Scored through a four-band threshold table
    BOOLEAN = "boolean"  # Pass/Fail


class Grade(str, Enum):
    """Letter grades and non-numeric outcomes."""

    A_PLUS = "A+"
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"
    PASS = "Pass"
    FAIL = "Fail"
    MANUAL_REVIEW = "ManualReviewNeeded"


class Confidence(str, Enum):
    """How much a metric value can be trusted."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    DEFINITE = "definite"
    LIKELY = "likely"
    MANUAL_REVIEW = "manualReviewNeeded"

    def downgrade(self) -> "Confidence":
        """Return the next weaker confidence level."""
        return _DOWNGRADES.get(self, self)


_DOWNGRADES = {
    Confidence.HIGH: Confidence.MEDIUM,
    Confidence.MEDIUM: Confidence.LOW,
    Confidence.DEFINITE: Confidence.LIKELY,
    Confidence.LIKELY: Confidence.LOW,
}


class RepoRef(BaseModel):
    """Reference to a source code repository."""

    model_config = ConfigDict(frozen=True)

    platform: Platform = Platform.GITHUB
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def url(self) -> str:
        """Get the full repository URL."""
        base_urls = {
            Platform.GITHUB: "https://github.com",
            Platform.GITLAB: "https://gitlab.com",
            Platform.BITBUCKET: "https://bitbucket.org",
        }
        base = base_urls.get(self.platform, "")
        return f"{base}/{self.owner}/{self.repo}"


# --- Scoring Models ---


class Metric(BaseModel):
    """A single measured repository signal with its derived score and grade."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: Category
    kind: MetricKind
    value: bool | int | float | str | None = None
    score: int | None = Field(default=None, ge=0, le=100)
    grade: Grade
    confidence: Confidence
    explanation: str = ""
    why_it_matters: str = ""
    threshold: dict[str, str] = Field(default_factory=dict)
    data_source: str = ""
    calculated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _check_manual_review(self) -> "Metric":
        needs_review = self.grade == Grade.MANUAL_REVIEW
        if needs_review != (self.score is None):
            raise ValueError("score must be None exactly when grade is ManualReviewNeeded")
        if needs_review and self.confidence != Confidence.MANUAL_REVIEW:
            raise ValueError("metrics needing manual review must carry manualReviewNeeded confidence")
        return self

    @property
    def needs_review(self) -> bool:
        return self.grade == Grade.MANUAL_REVIEW


class CategoryBreakdown(BaseModel):
    """Aggregated score for one category."""

    model_config = ConfigDict(frozen=True)

    category: Category
    score: int | None = Field(default=None, ge=0, le=100)
    grade: Grade
    weight: float = Field(ge=0, le=1)
    metrics: tuple[Metric, ...] = ()


class HealthScore(BaseModel):
    """Overall weighted evaluation for one repository."""

    model_config = ConfigDict(frozen=True)

    overall_score: float | None = Field(default=None, ge=0, le=100)
    overall_grade: Grade
    category_breakdown: dict[Category, CategoryBreakdown] = Field(default_factory=dict)


class HealthSummary(BaseModel):
    """Human-readable summary of a health score."""

    model_config = ConfigDict(frozen=True)

    text: str
    strengths: list[dict] = Field(default_factory=list)
    improvements: list[dict] = Field(default_factory=list)


# --- Custom Criteria Models ---


class CriterionType(str, Enum):
    """What a custom criterion checks."""

    TECHNOLOGY = "technology"
    THEME = "theme"
    CAPABILITY = "capability"
    INCLUSION = "inclusion"  # Must have
    EXCLUSION = "exclusion"  # Must not have


class CustomCriterion(BaseModel):
    """A user-defined Pass/Fail check evaluated alongside the baseline metrics.

    Automatic criteria carry a short rule in ``logic``, for example
    ``language == Python``, ``topics includes cli``, ``has docker`` or
    ``no copyleft license``. Manual criteria are always flagged for review.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    type: CriterionType
    automatic: bool = True
    logic: str | None = None

    @model_validator(mode="after")
    def _check_logic(self) -> "CustomCriterion":
        if self.automatic and not (self.logic or "").strip():
            raise ValueError(f"Automatic criterion '{self.id}' needs evaluation logic")
        return self


class CriterionResult(BaseModel):
    """Outcome of one custom criterion."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: CriterionType
    grade: Grade
    confidence: Confidence
    evidence: str = ""
    evaluated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _check_outcome(self) -> "CriterionResult":
        if self.grade not in (Grade.PASS, Grade.FAIL, Grade.MANUAL_REVIEW):
            raise ValueError("criteria are graded Pass, Fail or ManualReviewNeeded")
        if (self.grade == Grade.MANUAL_REVIEW) != (self.confidence == Confidence.MANUAL_REVIEW):
            raise ValueError("criteria needing manual review must carry manualReviewNeeded confidence")
        return self

    @property
    def passed(self) -> bool | None:
        if self.grade == Grade.MANUAL_REVIEW:
            return None
        return self.grade == Grade.PASS


class Evaluation(BaseModel):
    """Complete evaluation of a repository."""

    model_config = ConfigDict(frozen=True)

    repository: RepoRef
    health_score: HealthScore
    metrics: tuple[Metric, ...] = ()
    summary: HealthSummary | None = None
    criteria: tuple[CriterionResult, ...] = ()
    profile: str = "default"
    evaluated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def metric(self, metric_id: str) -> Metric | None:
        """Look up a metric by id."""
        for metric in self.metrics:
            if metric.id == metric_id:
                return metric
        return None


# --- Comparison Models ---


class ComparisonCell(BaseModel):
    """One repository's value in a comparison row."""

    model_config = ConfigDict(frozen=True)

    repository: str
    available: bool = True
    score: float | None = None
    grade: Grade | None = None
    is_best: bool = False
    is_worst: bool = False


class ComparisonRow(BaseModel):
    """Per-metric comparison across repositories."""

    model_config = ConfigDict(frozen=True)

    metric_id: str
    name: str
    cells: tuple[ComparisonCell, ...] = ()

    @property
    def highlighted(self) -> bool:
        return any(cell.is_best or cell.is_worst for cell in self.cells)


class Comparison(BaseModel):
    """Side-by-side comparison of several evaluations."""

    model_config = ConfigDict(frozen=True)

    repositories: tuple[str, ...] = ()
    overall: ComparisonRow | None = None
    rows: tuple[ComparisonRow, ...] = ()
