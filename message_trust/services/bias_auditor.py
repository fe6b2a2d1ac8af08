"""
Bias detection and mitigation for trust scores

The auditor inspects a single result against heuristics (low-confidence
extremes, cohort outliers, degenerate trait patterns), shrinks flagged
scores toward the midpoint and withholds results whose flags are severe
enough to need manual review. The cohort analyzer works on aggregate,
anonymized score distributions.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

import numpy as np

from message_trust.services.trust_score_engine import rescore, round_half_up
from message_trust.shared.logging_config import get_project_logger
from message_trust.shared.models import (
    TRAIT_NAMES,
    BiasFlag,
    BiasSeverity,
    BiasType,
    CohortStatistics,
    PersonalityTraits,
    TrustScoreResult,
)
from message_trust.shared.settings import BiasSettings, ScoringSettings


@dataclass
class AuditOutcome:
    result: TrustScoreResult
    flags: list[BiasFlag] = field(default_factory=list)
    withheld: bool = False
    original_score: int | None = None

    @property
    def mitigated(self) -> bool:
        return self.original_score is not None and self.original_score != self.result.score


class BiasAuditor:
    """Audit trust score results for systematic skew"""

    def __init__(self, settings: BiasSettings = None, logger=None, scoring: ScoringSettings = None):
        self.settings = settings or BiasSettings()
        self.scoring = scoring or ScoringSettings()
        self.logger = logger or get_project_logger(__name__)

    def audit(self, result: TrustScoreResult, traits: PersonalityTraits,
              cohort: CohortStatistics | None = None) -> AuditOutcome:
        """
        Run every heuristic, apply mitigation and decide on withholding

        Args:
            result: Score computed from ``traits``
            traits: Traits the score was computed from
            cohort: Score distribution of prior analyses, when available

        Returns:
            AuditOutcome with the possibly adjusted result and all flags
        """
        flags = []
        for check in (self._check_confidence_outlier, self._check_cohort_skew, self._check_pattern_overfit):
            flag = check(result, traits, cohort)
            if flag is not None:
                flags.append(flag)

        for flag in flags:
            self.logger.warning(
                f"Bias flag raised: type={flag.type.value} severity={flag.severity.value} - {flag.description}"
            )

        outcome = AuditOutcome(result=result, flags=flags, original_score=result.score)

        if self.settings.mitigation_enabled:
            self._mitigate(outcome)

        withhold_at = BiasSeverity(self.settings.withhold_severity)
        outcome.withheld = any(
            flag.severity.at_least(withhold_at) for flag in flags if not flag.mitigation_applied
        )
        if outcome.withheld:
            self.logger.warning(
                f"Result withheld for manual review (score {outcome.result.score}, "
                f"{len(outcome.flags)} flags)"
            )

        self.logger.info(
            f"Bias audit complete: {len(outcome.flags)} flags, score {outcome.original_score} -> "
            f"{outcome.result.score}, withheld={outcome.withheld}"
        )
        return outcome

    def _check_confidence_outlier(self, result, traits, cohort) -> BiasFlag | None:
        s = self.settings
        if result.confidence >= s.confidence_floor:
            return None
        if s.extreme_low < result.score < s.extreme_high:
            return None

        severity = BiasSeverity.HIGH if result.confidence < s.confidence_floor / 2 else BiasSeverity.MEDIUM
        return BiasFlag(
            type=BiasType.CONFIDENCE_OUTLIER,
            severity=severity,
            description=(
                f"Extreme score {result.score} produced with low confidence {result.confidence}"
            ),
        )

    def _check_cohort_skew(self, result, traits, cohort) -> BiasFlag | None:
        s = self.settings
        if cohort is None or cohort.sample_size < s.min_cohort_size or not cohort.std_score:
            return None

        z = (result.score - cohort.mean_score) / cohort.std_score
        if abs(z) <= s.cohort_sigma_threshold:
            return None

        justification = self._trait_justification(traits, cohort, z)
        if justification:
            self.logger.info(f"Cohort outlier (z={z:.2f}) justified by {justification}")
            return None

        if abs(z) > s.cohort_sigma_threshold * 2:
            severity = BiasSeverity.CRITICAL
        elif abs(z) > s.cohort_sigma_threshold * 1.5:
            severity = BiasSeverity.HIGH
        else:
            severity = BiasSeverity.MEDIUM

        return BiasFlag(
            type=BiasType.COHORT_SKEW,
            severity=severity,
            description=(
                f"Score {result.score} is {z:+.1f} standard deviations from the cohort mean "
                f"{cohort.mean_score:.1f} (n={cohort.sample_size}) without matching trait evidence"
            ),
        )

    def _trait_justification(self, traits, cohort, z: float) -> str | None:
        """Name the trait that explains a cohort outlier, if any"""
        if not cohort.trait_means or not cohort.trait_stds:
            return None

        for name, sign in (('conscientiousness', 1), ('neuroticism', -1)):
            mean = cohort.trait_means.get(name)
            std = cohort.trait_stds.get(name)
            if mean is None or not std:
                continue
            trait_z = sign * (getattr(traits, name) - mean) / std
            if trait_z * z > 0 and abs(trait_z) >= self.settings.trait_justification_sigma:
                return name
        return None

    def _check_pattern_overfit(self, result, traits, cohort) -> BiasFlag | None:
        if traits.spread > self.settings.pattern_spread_floor:
            return None
        return BiasFlag(
            type=BiasType.PATTERN_OVERFIT,
            severity=BiasSeverity.LOW,
            description=f"All five traits lie within {traits.spread:g} points of each other",
        )

    def _mitigate(self, outcome: AuditOutcome):
        actionable = [f for f in outcome.flags if f.severity.at_least(BiasSeverity.MEDIUM)]
        if not actionable:
            return

        trigger = max(actionable, key=lambda f: f.severity.rank)
        factor = self.settings.shrinkage_by_severity.get(trigger.severity.value, 0)
        score = outcome.result.score
        midpoint = self.settings.midpoint

        target = midpoint + (score - midpoint) * (1 - factor)
        adjustment = target - score
        cap = self.settings.max_adjustment
        adjustment = max(-cap, min(cap, adjustment))
        new_score = round_half_up(score + adjustment)
        if new_score == score:
            return

        outcome.result = rescore(outcome.result, new_score, self.scoring)
        outcome.flags.append(BiasFlag(
            type=trigger.type,
            severity=trigger.severity,
            description=(
                f"Score adjusted from {score} to {new_score} toward midpoint {midpoint:g} "
                f"({trigger.severity.value} shrinkage {factor:.0%}) due to {trigger.type.value}"
            ),
            mitigation_applied=True,
        ))
        self.logger.warning(
            f"Applied {trigger.severity.value} mitigation for {trigger.type.value}: {score} -> {new_score}"
        )


@dataclass(frozen=True)
class FairnessMetrics:
    demographic_parity: float
    equalized_odds: float
    calibration: float
    overall_fairness: float
    sample_size: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def as_dict(self) -> dict:
        return {
            'demographic_parity': round(self.demographic_parity, 4),
            'equalized_odds': round(self.equalized_odds, 4),
            'calibration': round(self.calibration, 4),
            'overall_fairness': round(self.overall_fairness, 4),
            'sample_size': self.sample_size,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class GroupStatistics:
    name: str
    count: int
    mean_score: float
    std_score: float
    positive_rate: float


@dataclass
class DisparityReport:
    groups: list[GroupStatistics]
    flags: list[BiasFlag]
    metrics: FairnessMetrics
    recommended_actions: list[str]


class CohortAnalyzer:
    """Aggregate statistics and group fairness checks over prior scores"""

    def __init__(self, settings: BiasSettings = None, logger=None):
        self.settings = settings or BiasSettings()
        self.logger = logger or get_project_logger(__name__)

    def cohort_statistics(self, scores, trait_rows=None) -> CohortStatistics:
        """
        Summarize a score distribution

        Args:
            scores: Iterable of prior trust scores
            trait_rows: Optional iterable of PersonalityTraits or trait dicts
        """
        values = np.asarray(list(scores), dtype=float)
        if values.size == 0:
            return CohortStatistics(sample_size=0, mean_score=0.0, std_score=0.0)

        trait_means = trait_stds = None
        rows = list(trait_rows or [])
        if rows:
            matrix = np.asarray(
                [[_trait_value(row, name) for name in TRAIT_NAMES] for row in rows], dtype=float
            )
            trait_means = dict(zip(TRAIT_NAMES, matrix.mean(axis=0).tolist()))
            trait_stds = dict(zip(TRAIT_NAMES, matrix.std(axis=0).tolist()))

        return CohortStatistics(
            sample_size=int(values.size),
            mean_score=float(values.mean()),
            std_score=float(values.std()),
            trait_means=trait_means,
            trait_stds=trait_stds,
        )

    def detect_group_disparity(self, groups: dict) -> DisparityReport:
        """
        Compare score distributions across groups

        Args:
            groups: Mapping of group name to the scores of its members

        Returns:
            DisparityReport with demographic skew flags and fairness metrics
        """
        s = self.settings
        stats = []
        for name, scores in groups.items():
            values = np.asarray(list(scores), dtype=float)
            if values.size < s.min_cohort_size:
                self.logger.info(f"Skipping group '{name}' with {values.size} members (< {s.min_cohort_size})")
                continue
            stats.append(GroupStatistics(
                name=name,
                count=int(values.size),
                mean_score=float(values.mean()),
                std_score=float(values.std()),
                positive_rate=float((values >= s.positive_outcome_score).mean()),
            ))

        flags = []
        if len(stats) >= 2:
            flags.extend(self._parity_flags(stats))
            flags.extend(self._score_gap_flags(stats))
        flags.extend(self._variance_flags(stats))

        metrics = self._fairness_metrics(stats)
        for flag in flags:
            self.logger.warning(f"Group disparity: {flag.severity.value} - {flag.description}")

        return DisparityReport(
            groups=stats,
            flags=flags,
            metrics=metrics,
            recommended_actions=self._recommended_actions(flags, metrics),
        )

    def _parity_flags(self, stats: list[GroupStatistics]) -> list[BiasFlag]:
        rates = [g.positive_rate for g in stats]
        difference = max(rates) - min(rates)
        if difference <= self.settings.parity_threshold:
            return []
        return [BiasFlag(
            type=BiasType.DEMOGRAPHIC_SKEW,
            severity=_graded(difference, high=0.20, medium=0.15),
            description=f"Demographic parity gap: {difference:.1%} difference in positive outcomes",
        )]

    @staticmethod
    def _score_gap_flags(stats: list[GroupStatistics]) -> list[BiasFlag]:
        means = [g.mean_score for g in stats]
        difference = max(means) - min(means)
        if difference <= 10:
            return []
        return [BiasFlag(
            type=BiasType.DEMOGRAPHIC_SKEW,
            severity=_graded(difference, high=20, medium=15),
            description=f"Average score gap of {difference:.1f} points between groups",
        )]

    @staticmethod
    def _variance_flags(stats: list[GroupStatistics]) -> list[BiasFlag]:
        return [
            BiasFlag(
                type=BiasType.DEMOGRAPHIC_SKEW,
                severity=BiasSeverity.MEDIUM,
                description=f"High score variance in group '{g.name}': {g.std_score:.1f} standard deviation",
            )
            for g in stats if g.std_score > 25
        ]

    @staticmethod
    def _fairness_metrics(stats: list[GroupStatistics]) -> FairnessMetrics:
        if not stats:
            return FairnessMetrics(1.0, 1.0, 1.0, 1.0, 0)

        rates = [g.positive_rate for g in stats]
        means = [g.mean_score for g in stats]
        parity = max(0.0, 1 - (max(rates) - min(rates)))
        odds = max(0.0, 1 - (max(means) - min(means)) / 100)
        calibration = max(0.0, 1 - float(np.mean([g.std_score for g in stats])) / 50)
        return FairnessMetrics(
            demographic_parity=parity,
            equalized_odds=odds,
            calibration=calibration,
            overall_fairness=(parity + odds + calibration) / 3,
            sample_size=sum(g.count for g in stats),
        )

    @staticmethod
    def _recommended_actions(flags: list[BiasFlag], metrics: FairnessMetrics) -> list[str]:
        if not flags:
            return ['No bias detected. Continue monitoring fairness metrics.']

        actions = []
        if any(f.severity == BiasSeverity.HIGH for f in flags):
            actions.append('High-severity bias detected. Review affected assessments manually.')
        if any(f.severity == BiasSeverity.MEDIUM for f in flags):
            actions.append('Medium-severity bias detected. Increase monitoring for affected groups.')
        if metrics.overall_fairness < 0.8:
            actions.append('Overall fairness score is low. Consider recalibrating the inference model.')
        if metrics.sample_size < 100:
            actions.append('Sample size is small. Collect more data for reliable bias detection.')
        return actions


def _graded(value: float, high: float, medium: float) -> BiasSeverity:
    if value > high:
        return BiasSeverity.HIGH
    if value > medium:
        return BiasSeverity.MEDIUM
    return BiasSeverity.LOW


def _trait_value(row, name: str) -> float:
    if isinstance(row, PersonalityTraits):
        return getattr(row, name)
    return row[name]
