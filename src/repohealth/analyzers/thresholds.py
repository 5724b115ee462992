"""Threshold bands and grade mapping.

Numeric metrics are scored through a four-band table. Bands are checked
from the most favourable to the least (excellent, good, fair, poor), so a
value sitting exactly on a shared boundary resolves to the better band.
Every value inside a band receives that band's fixed score.
"""

import math
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field

from repohealth.errors import ConfigurationError
from repohealth.models.schemas import Grade

BAND_ORDER = ("excellent", "good", "fair", "poor")

# Representative score for each band
DEFAULT_BAND_SCORES = {"excellent": 95, "good": 80, "fair": 60, "poor": 30}

# Letter grade lower bounds (A+ applies to the overall score only)
GRADE_FLOORS = [
    (90, Grade.A),
    (80, Grade.B),
    (70, Grade.C),
    (50, Grade.D),
]
A_PLUS_FLOOR = 97


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with ties going away from zero, unlike the built-in round()."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def score_to_grade(score: float, allow_a_plus: bool = False) -> Grade:
    """Convert a numeric score to a letter grade."""
    if allow_a_plus and score >= A_PLUS_FLOOR:
        return Grade.A_PLUS
    for floor, grade in GRADE_FLOORS:
        if score >= floor:
            return grade
    return Grade.F


def _fmt(value: float) -> str:
    return f"{value:g}"


class Band(BaseModel):
    """A numeric range with a fixed score."""

    model_config = ConfigDict(frozen=True)

    lower: float | None = None
    upper: float | None = None
    lower_inclusive: bool = True
    upper_inclusive: bool = False
    score: int = Field(ge=0, le=100)

    def contains(self, value: float) -> bool:
        if self.lower is not None:
            if value < self.lower or (value == self.lower and not self.lower_inclusive):
                return False
        if self.upper is not None:
            if value > self.upper or (value == self.upper and not self.upper_inclusive):
                return False
        return True

    def describe(self, unit: str = "") -> str:
        """Human-readable bound, e.g. ``>= 5 and < 20 commits/week``."""
        parts = []
        if self.lower is not None:
            parts.append(f"{'>=' if self.lower_inclusive else '>'} {_fmt(self.lower)}")
        if self.upper is not None:
            parts.append(f"{'<=' if self.upper_inclusive else '<'} {_fmt(self.upper)}")
        text = " and ".join(parts) if parts else "any value"
        return f"{text} {unit}".strip()


class ThresholdTable(BaseModel):
    """Four named bands for one numeric metric."""

    model_config = ConfigDict(frozen=True)

    bands: dict[str, Band]
    unit: str = ""

    def band_for(self, value: float) -> str:
        """Return the name of the first band (best first) containing ``value``."""
        for name in BAND_ORDER:
            band = self.bands.get(name)
            if band is not None and band.contains(value):
                return name
        raise ConfigurationError(f"Value {value} falls outside every threshold band")

    def score(self, value: float) -> tuple[str, int]:
        name = self.band_for(value)
        return name, self.bands[name].score

    def describe(self) -> dict[str, str]:
        return {name: self.bands[name].describe(self.unit) for name in BAND_ORDER if name in self.bands}

    def validate_bands(self, table_id: str) -> None:
        """Check that all four bands exist and together cover the number line.

        Raises:
            ConfigurationError: If a band is missing, unknown, or a gap exists.
        """
        missing = [name for name in BAND_ORDER if name not in self.bands]
        if missing:
            raise ConfigurationError(
                f"Threshold table '{table_id}' is missing band(s): {', '.join(missing)}",
                subject=table_id,
            )
        unknown = sorted(set(self.bands) - set(BAND_ORDER))
        if unknown:
            raise ConfigurationError(
                f"Threshold table '{table_id}' defines unknown band(s): {', '.join(unknown)}",
                subject=table_id,
            )

        # Check every boundary and its immediate neighbourhood
        samples = [-1e18, 1e18]
        for band in self.bands.values():
            for edge in (band.lower, band.upper):
                if edge is None:
                    continue
                step = max(abs(edge), 1.0) * 1e-9
                samples.extend([edge - step, edge, edge + step])

        for value in samples:
            if not any(band.contains(value) for band in self.bands.values()):
                raise ConfigurationError(
                    f"Threshold table '{table_id}' has a gap around {_fmt(value)}",
                    subject=table_id,
                )


def _band_scores(scores: dict[str, int] | None) -> dict[str, int]:
    return {**DEFAULT_BAND_SCORES, **(scores or {})}


def higher_is_better(
    excellent: float,
    good: float,
    fair: float,
    unit: str = "",
    scores: dict[str, int] | None = None,
) -> ThresholdTable:
    """Build a table where larger values are healthier.

    Each cutoff is the inclusive lower bound of its band.
    """
    if not excellent > good > fair:
        raise ConfigurationError("higher-is-better cutoffs must satisfy excellent > good > fair")
    s = _band_scores(scores)
    return ThresholdTable(
        unit=unit,
        bands={
            "excellent": Band(lower=excellent, score=s["excellent"]),
            "good": Band(lower=good, upper=excellent, score=s["good"]),
            "fair": Band(lower=fair, upper=good, score=s["fair"]),
            "poor": Band(upper=fair, score=s["poor"]),
        },
    )


def lower_is_better(
    excellent: float,
    good: float,
    fair: float,
    unit: str = "",
    scores: dict[str, int] | None = None,
) -> ThresholdTable:
    """Build a table where smaller values are healthier.

    Each cutoff is the inclusive upper bound of its band.
    """
    if not excellent < good < fair:
        raise ConfigurationError("lower-is-better cutoffs must satisfy excellent < good < fair")
    s = _band_scores(scores)
    return ThresholdTable(
        unit=unit,
        bands={
            "excellent": Band(upper=excellent, upper_inclusive=True, score=s["excellent"]),
            "good": Band(
                lower=excellent, lower_inclusive=False, upper=good, upper_inclusive=True, score=s["good"]
            ),
            "fair": Band(
                lower=good, lower_inclusive=False, upper=fair, upper_inclusive=True, score=s["fair"]
            ),
            "poor": Band(lower=fair, lower_inclusive=False, score=s["poor"]),
        },
    )


def is_finite_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
