"""
Tunable pipeline policy, passed explicitly into every pipeline component
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class UploadSettings:
    """Limits applied while an upload is validated"""
    max_file_size: int = 50 * 1024 * 1024
    min_messages: int = 50
    retention_hours: int = 24
    allowed_mime_types: tuple = (
        'application/json',
        'text/csv',
        'text/x-csv',
        'text/plain',
        'application/mbox',
        'message/rfc822',
        'application/octet-stream',
    )


@dataclass(frozen=True)
class InferenceSettings:
    """Connection and retry policy for the personality inference service"""
    base_url: str = 'http://localhost:11434'
    model: str = 'personality-v1'
    api_key: str | None = None
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    timeout_seconds: float = 30.0
    max_messages: int = 500
    temperature: float = 0.1


@dataclass(frozen=True)
class ScoringSettings:
    """Weights and thresholds of the trait-to-trust-score transform"""
    weights: Mapping = field(default_factory=lambda: {
        'conscientiousness': 0.40,
        'neuroticism': 0.25,
        'agreeableness': 0.20,
        'openness': 0.10,
        'extraversion': 0.05,
    })
    low_risk_threshold: int = 70
    medium_risk_threshold: int = 40
    traditional_min: int = 300
    traditional_max: int = 850
    validity_days: int = 30


@dataclass(frozen=True)
class BiasSettings:
    """Heuristic thresholds and mitigation policy of the bias auditor"""
    confidence_floor: float = 60
    extreme_low: int = 5
    extreme_high: int = 95
    min_cohort_size: int = 30
    cohort_sigma_threshold: float = 2.5
    trait_justification_sigma: float = 1.0
    pattern_spread_floor: float = 2
    parity_threshold: float = 0.10
    positive_outcome_score: int = 70
    mitigation_enabled: bool = True
    midpoint: float = 50
    shrinkage_by_severity: Mapping = field(default_factory=lambda: {
        'medium': 0.15,
        'high': 0.30,
        'critical': 0.30,
    })
    max_adjustment: float = 15
    withhold_severity: str = 'critical'


@dataclass(frozen=True)
class PipelineSettings:
    """Everything the upload pipeline needs to know about policy"""
    upload: UploadSettings = field(default_factory=UploadSettings)
    inference: InferenceSettings = field(default_factory=InferenceSettings)
    scoring: ScoringSettings = field(default_factory=ScoringSettings)
    bias: BiasSettings = field(default_factory=BiasSettings)

    @classmethod
    def from_env(cls, environ: Mapping | None = None) -> 'PipelineSettings':
        """Build settings from environment variables, falling back to defaults"""
        env = os.environ if environ is None else environ

        def _int(name, default):
            return int(env[name]) if env.get(name) else default

        def _float(name, default):
            return float(env[name]) if env.get(name) else default

        upload = UploadSettings(
            max_file_size=_int('MAX_UPLOAD_MB', 50) * 1024 * 1024,
            min_messages=_int('MIN_MESSAGES', 50),
            retention_hours=_int('RETENTION_HOURS', 24),
        )
        inference = InferenceSettings(
            base_url=env.get('INFERENCE_BASE_URL') or InferenceSettings.base_url,
            model=env.get('INFERENCE_MODEL') or InferenceSettings.model,
            api_key=env.get('INFERENCE_API_KEY') or None,
            max_attempts=_int('INFERENCE_MAX_ATTEMPTS', 3),
            backoff_base_seconds=_float('INFERENCE_BACKOFF', 1.0),
            timeout_seconds=_float('INFERENCE_TIMEOUT', 30.0),
            max_messages=_int('INFERENCE_MAX_MESSAGES', 500),
        )
        bias = BiasSettings(
            confidence_floor=_float('BIAS_CONFIDENCE_FLOOR', 60),
            max_adjustment=_float('BIAS_MAX_ADJUSTMENT', 15),
            withhold_severity=env.get('BIAS_WITHHOLD_SEVERITY') or 'critical',
        )
        return cls(upload=upload, inference=inference, scoring=ScoringSettings(), bias=bias)
