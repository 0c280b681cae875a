from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable

from .thresholds import DirectionalThresholds


HARNESS_DIRECTION_EPSILON = 1e-5


def _sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def directional_correctness(reference_delta: float, candidate_delta: float, epsilon: float = 1e-6) -> bool:
    """True when both shifts are negligible or both move the same way."""

    if abs(reference_delta) <= epsilon and abs(candidate_delta) <= epsilon:
        return True
    return _sign(reference_delta) == _sign(candidate_delta)


def directional_sign_mismatch(reference_delta: float, candidate_delta: float, epsilon: float = 1e-6) -> bool:
    return not directional_correctness(reference_delta, candidate_delta, epsilon)


@dataclass
class DirectionalRecord:
    scene_id: str
    axis: str
    case_id: str
    baseline_case_id: str
    reference_delta: float
    candidate_delta: float
    correct: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DirectionalScore:
    axis: str
    classification: str
    score: float
    threshold: float
    samples: int
    correct: int
    passed: bool

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["pass"] = data.pop("passed")
        return data


def aggregate_directional_scores(
    records: Iterable[DirectionalRecord],
    thresholds: DirectionalThresholds,
) -> list[DirectionalScore]:
    grouped: dict[str, list[DirectionalRecord]] = {}
    for record in records:
        grouped.setdefault(record.axis, []).append(record)

    scores: list[DirectionalScore] = []
    for axis in sorted(grouped):
        axis_records = grouped[axis]
        correct = sum(1 for r in axis_records if r.correct)
        total = len(axis_records)
        score = correct / total if total else 0.0
        classification = thresholds.classify(axis)
        threshold = thresholds.threshold_for(classification)
        scores.append(
            DirectionalScore(
                axis=axis,
                classification=classification,
                score=score,
                threshold=threshold,
                samples=total,
                correct=correct,
                passed=score >= threshold,
            )
        )
    return scores
