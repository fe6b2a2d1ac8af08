"""
Shared data models for message ingestion and trust scoring
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


TRAIT_NAMES = ('conscientiousness', 'neuroticism', 'agreeableness', 'openness', 'extraversion')


class MessageFormat(str, Enum):
    """Message export formats the pipeline understands"""
    PLATFORM_A_CHAT = 'platform_a_chat'
    PLATFORM_B_CHAT = 'platform_b_chat'
    EMAIL_MAILBOX = 'email_mailbox'
    GENERIC_STRUCTURED = 'generic_structured'


class RiskTier(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class BiasType(str, Enum):
    DEMOGRAPHIC_SKEW = 'demographic_skew'
    CONFIDENCE_OUTLIER = 'confidence_outlier'
    PATTERN_OVERFIT = 'pattern_overfit'
    COHORT_SKEW = 'cohort_skew'


class BiasSeverity(str, Enum):
    """Severity tiers, ordered from least to most severe"""
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'

    @property
    def rank(self) -> int:
        return list(BiasSeverity).index(self)

    def at_least(self, other: 'BiasSeverity') -> bool:
        return self.rank >= BiasSeverity(other).rank


@dataclass
class MessageRecord:
    """A single message taken from an export. Lives only in pipeline memory."""
    timestamp: datetime
    sender: str
    body: str
    platform: str
    sequence: int = 0

    def to_canonical(self) -> dict:
        """Stable dict form used for hashing sanitized content"""
        return {
            'sequence': self.sequence,
            'timestamp': self.timestamp.isoformat(),
            'sender': self.sender,
            'body': self.body,
            'platform': self.platform,
        }


@dataclass(frozen=True)
class PersonalityTraits:
    """Big-Five trait scores plus the inference confidence, each in [0, 100]"""
    conscientiousness: float
    neuroticism: float
    agreeableness: float
    openness: float
    extraversion: float
    confidence: float

    def __post_init__(self):
        for name in TRAIT_NAMES + ('confidence',):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be numeric, got {value!r}")
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be within [0, 100], got {value}")

    def as_dict(self) -> dict:
        return {name: getattr(self, name) for name in TRAIT_NAMES + ('confidence',)}

    @property
    def spread(self) -> float:
        values = [getattr(self, name) for name in TRAIT_NAMES]
        return max(values) - min(values)


@dataclass(frozen=True)
class TrustScoreResult:
    """Trust score derived from a PersonalityTraits value"""
    score: int
    traditional_score: int
    risk_tier: RiskTier
    confidence: float
    computed_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        """Expired results are stale and need a fresh analysis"""
        return (now or datetime.now(UTC)) >= self.expires_at

    def as_dict(self) -> dict:
        return {
            'score': self.score,
            'traditional_score': self.traditional_score,
            'risk_tier': self.risk_tier.value,
            'confidence': self.confidence,
            'computed_at': self.computed_at.isoformat(),
            'expires_at': self.expires_at.isoformat(),
        }


@dataclass
class BiasFlag:
    """Advisory annotation saying a score may reflect skew rather than signal"""
    type: BiasType
    severity: BiasSeverity
    description: str
    mitigation_applied: bool = False
    flagged_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    resolved_at: datetime | None = None

    def as_dict(self) -> dict:
        return {
            'type': self.type.value,
            'severity': self.severity.value,
            'description': self.description,
            'mitigation_applied': self.mitigation_applied,
            'flagged_at': self.flagged_at.isoformat(),
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass(frozen=True)
class CohortStatistics:
    """Anonymized score distribution of prior analyses"""
    sample_size: int
    mean_score: float
    std_score: float
    trait_means: dict | None = None
    trait_stds: dict | None = None
