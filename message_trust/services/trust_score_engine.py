"""
Transform of personality traits into a trust score

Pure functions only: the same traits, settings and clock always give the
same result.
"""

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from message_trust.shared.models import TRAIT_NAMES, PersonalityTraits, RiskTier, TrustScoreResult
from message_trust.shared.settings import ScoringSettings


# Traits where a higher value lowers trustworthiness
INVERTED_TRAITS = ('neuroticism',)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def trait_contribution(name: str, value: float, weight: float) -> float:
    if name in INVERTED_TRAITS:
        return (100 - value) * weight
    return value * weight


def risk_tier_for(score: int, settings: ScoringSettings) -> RiskTier:
    if score >= settings.low_risk_threshold:
        return RiskTier.LOW
    if score >= settings.medium_risk_threshold:
        return RiskTier.MEDIUM
    return RiskTier.HIGH


def traditional_score_for(score: int, settings: ScoringSettings) -> int:
    """Map a 0-100 score onto the familiar 300-850 credit range"""
    span = (settings.traditional_max - settings.traditional_min) / 100
    return round_half_up(settings.traditional_min + score * span)


def compute_trust_score(traits: PersonalityTraits, settings: ScoringSettings = None,
                        now: datetime | None = None) -> TrustScoreResult:
    """
    Compute the trust score for a set of traits

    Args:
        traits: Validated Big-Five traits
        settings: Weights and thresholds (defaults apply when omitted)
        now: Computation time; injected for reproducibility

    Returns:
        TrustScoreResult valid for ``settings.validity_days``
    """
    settings = settings or ScoringSettings()
    computed_at = now or datetime.now(UTC)

    weighted = sum(
        trait_contribution(name, getattr(traits, name), settings.weights[name])
        for name in TRAIT_NAMES
    )
    score = min(100, max(0, round_half_up(weighted)))

    return TrustScoreResult(
        score=score,
        traditional_score=traditional_score_for(score, settings),
        risk_tier=risk_tier_for(score, settings),
        confidence=traits.confidence,
        computed_at=computed_at,
        expires_at=computed_at + timedelta(days=settings.validity_days),
    )


def rescore(result: TrustScoreResult, score: int, settings: ScoringSettings = None) -> TrustScoreResult:
    """Derive a result with a different score, keeping confidence and timestamps"""
    settings = settings or ScoringSettings()
    score = min(100, max(0, score))
    return TrustScoreResult(
        score=score,
        traditional_score=traditional_score_for(score, settings),
        risk_tier=risk_tier_for(score, settings),
        confidence=result.confidence,
        computed_at=result.computed_at,
        expires_at=result.expires_at,
    )


@dataclass(frozen=True)
class TraitContribution:
    trait: str
    value: float
    weight: float
    contribution: float

    def as_dict(self) -> dict:
        return {
            'trait': self.trait,
            'value': self.value,
            'weight': self.weight,
            'contribution': round(self.contribution, 2),
        }


@dataclass(frozen=True)
class ScoreExplanation:
    overall_score: int
    trait_contributions: list = field(default_factory=list)
    confidence_factors: list = field(default_factory=list)
    recommendations: list = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            'overall_score': self.overall_score,
            'trait_contributions': [c.as_dict() for c in self.trait_contributions],
            'confidence_factors': list(self.confidence_factors),
            'recommendations': list(self.recommendations),
        }


def explain_score(result: TrustScoreResult, traits: PersonalityTraits,
                  settings: ScoringSettings = None) -> ScoreExplanation:
    """Break a score down into trait contributions with plain-language notes"""
    settings = settings or ScoringSettings()

    contributions = [
        TraitContribution(
            trait=name,
            value=getattr(traits, name),
            weight=settings.weights[name],
            contribution=trait_contribution(name, getattr(traits, name), settings.weights[name]),
        )
        for name in TRAIT_NAMES
    ]

    factors = []
    if result.confidence >= 80:
        factors.append('High-quality message history with clear personality indicators')
    elif result.confidence >= 60:
        factors.append('Moderate message history with some personality indicators')
    else:
        factors.append('Limited message history - consider providing more communication samples')
    if traits.conscientiousness >= 70:
        factors.append('Strong indicators of reliability and responsibility')
    if traits.neuroticism <= 30:
        factors.append('Low emotional instability suggests stable decision-making')
    if traits.agreeableness >= 60:
        factors.append('Cooperative communication style indicates trustworthiness')

    recommendations = []
    if result.score >= settings.low_risk_threshold:
        recommendations.append('Eligible for standard loan terms based on personality assessment')
    elif result.score >= 50:
        recommendations.append('Consider community endorsements to strengthen application')
        recommendations.append('Smaller initial loan amounts recommended')
    else:
        recommendations.append('Alternative verification methods recommended')
        recommendations.append('Community-based trust building suggested')
    if result.confidence < 60:
        recommendations.append('Provide additional communication history for more accurate assessment')

    return ScoreExplanation(
        overall_score=result.score,
        trait_contributions=contributions,
        confidence_factors=factors,
        recommendations=recommendations,
    )
