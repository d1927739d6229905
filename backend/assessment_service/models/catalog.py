"""
Instrument Catalog - Single Source of Truth (SSOT)
Fixed catalog of the self-report instruments the lifecycle system accepts.

Scoring rules are external; score ranges are kept here only so the
instrument maximum (the `max` of the last range) is never hard-coded per
record, and so seed tooling can label synthetic scores.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..errors import ValidationError


@dataclass(frozen=True)
class ScoreRange:
    min: int
    max: int
    label: str
    severity: str


@dataclass(frozen=True)
class InstrumentDefinition:
    """Static definition of one instrument."""
    assessment_type: str
    display_name: str
    title: str
    dimension: str
    fallback_level: str
    score_ranges: Tuple[ScoreRange, ...]

    @property
    def max_score(self) -> int:
        return self.score_ranges[-1].max


INSTRUMENTS: Dict[str, InstrumentDefinition] = {
    "phq9": InstrumentDefinition(
        assessment_type="phq9",
        display_name="PHQ-9",
        title="Patient Health Questionnaire (PHQ-9)",
        dimension="depression",
        fallback_level="moderate",
        score_ranges=(
            ScoreRange(0, 4, "Minimal Depression", "normal"),
            ScoreRange(5, 9, "Mild Depression", "mild"),
            ScoreRange(10, 14, "Moderate Depression", "moderate"),
            ScoreRange(15, 19, "Moderately Severe Depression", "severe"),
            ScoreRange(20, 27, "Severe Depression", "critical"),
        ),
    ),
    "gad7": InstrumentDefinition(
        assessment_type="gad7",
        display_name="GAD-7",
        title="Generalized Anxiety Disorder (GAD-7)",
        dimension="anxiety",
        fallback_level="moderate",
        score_ranges=(
            ScoreRange(0, 4, "Minimal Anxiety", "normal"),
            ScoreRange(5, 9, "Mild Anxiety", "mild"),
            ScoreRange(10, 14, "Moderate Anxiety", "moderate"),
            ScoreRange(15, 21, "Severe Anxiety", "severe"),
        ),
    ),
    "pss10": InstrumentDefinition(
        assessment_type="pss10",
        display_name="PSS-10",
        title="Perceived Stress Scale (PSS-10)",
        dimension="stress",
        fallback_level="moderate",
        score_ranges=(
            ScoreRange(0, 13, "Low Stress", "normal"),
            ScoreRange(14, 26, "Moderate Stress", "moderate"),
            ScoreRange(27, 40, "High Perceived Stress", "severe"),
        ),
    ),
    "who5": InstrumentDefinition(
        assessment_type="who5",
        display_name="WHO-5",
        title="WHO-5 Well-Being Index",
        dimension="wellbeing",
        fallback_level="moderate_low",  # lower raw score means lower wellbeing
        score_ranges=(
            ScoreRange(0, 7, "Poor Well-Being", "severe"),
            ScoreRange(8, 12, "Low Well-Being", "moderate"),
            ScoreRange(13, 18, "Fair Well-Being", "mild"),
            ScoreRange(19, 25, "Good Well-Being", "normal"),
        ),
    ),
    "cd-risc": InstrumentDefinition(
        assessment_type="cd-risc",
        display_name="CD-RISC",
        title="Connor-Davidson Resilience Scale (CD-RISC-10)",
        dimension="resilience",
        fallback_level="moderate",
        score_ranges=(
            ScoreRange(0, 19, "Low Resilience", "severe"),
            ScoreRange(20, 29, "Moderate Resilience", "moderate"),
            ScoreRange(30, 34, "High Resilience", "mild"),
            ScoreRange(35, 40, "Very High Resilience", "normal"),
        ),
    ),
    "ace": InstrumentDefinition(
        assessment_type="ace",
        display_name="ACE",
        title="Adverse Childhood Experiences (ACE) Questionnaire",
        dimension="trauma_exposure",
        fallback_level="high",
        score_ranges=(
            ScoreRange(0, 0, "No ACEs", "normal"),
            ScoreRange(1, 3, "Low ACEs", "mild"),
            ScoreRange(4, 5, "Moderate ACEs", "moderate"),
            ScoreRange(6, 10, "High ACEs", "severe"),
        ),
    ),
    "pcl5": InstrumentDefinition(
        assessment_type="pcl5",
        display_name="PCL-5",
        title="PTSD Checklist for DSM-5 (PCL-5)",
        dimension="trauma_exposure",
        fallback_level="moderate",
        score_ranges=(
            ScoreRange(0, 20, "Minimal Symptoms", "normal"),
            ScoreRange(21, 33, "Some Symptoms", "mild"),
            ScoreRange(34, 49, "Probable PTSD", "severe"),
            ScoreRange(50, 80, "Severe PTSD Symptoms", "critical"),
        ),
    ),
}

# Snapshot dimension order, and which instruments may feed each dimension
# (first present wins).
DIMENSION_ORDER: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("anxiety", ("gad7",)),
    ("depression", ("phq9",)),
    ("stress", ("pss10",)),
    ("wellbeing", ("who5",)),
    ("resilience", ("cd-risc",)),
    ("trauma_exposure", ("ace", "pcl5")),
)


def get_instrument(assessment_type: str) -> Optional[InstrumentDefinition]:
    return INSTRUMENTS.get(assessment_type)


def is_known_assessment_type(assessment_type: str) -> bool:
    return assessment_type in INSTRUMENTS


def validate_assessment_type(assessment_type: str) -> InstrumentDefinition:
    """Return the definition or raise ValidationError for types outside the catalog."""
    instrument = INSTRUMENTS.get(assessment_type)
    if instrument is None:
        known = ", ".join(sorted(INSTRUMENTS))
        raise ValidationError(f"Invalid assessment type '{assessment_type}'. Expected one of: {known}")
    return instrument


def instrument_max_score(assessment_type: str) -> Optional[int]:
    instrument = INSTRUMENTS.get(assessment_type)
    return instrument.max_score if instrument else None


def severity_for_score(assessment_type: str, score: int) -> Optional[str]:
    """Label a raw score using the instrument's ranges (seed/test tooling only)."""
    instrument = validate_assessment_type(assessment_type)
    for score_range in instrument.score_ranges:
        if score_range.min <= score <= score_range.max:
            return score_range.severity
    return None
