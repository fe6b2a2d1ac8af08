"""
Repository for trust analyses and their bias flags
"""

from message_trust.database import db
from message_trust.database.models import BiasFlagRecord, TrustAnalysis, UploadJob
from message_trust.repositories.base_repository import ModelRepository
from message_trust.repositories.upload_job_repository import parse_job_id
from message_trust.shared.models import PersonalityTraits


class AnalysisRepository(ModelRepository[TrustAnalysis]):
    """Persist audited trust analyses, keeping one active analysis per job"""

    def __init__(self, db_session=None):
        super().__init__(TrustAnalysis, db_session)

    def save_analysis(self, job: UploadJob, traits: PersonalityTraits, outcome,
                      model_version: str | None = None) -> TrustAnalysis:
        """
        Store an audit outcome as the job's active analysis

        Any analysis previously active for the job is deactivated first.
        """
        def _save():
            superseded = self.db_session.execute(
                db.update(TrustAnalysis)
                .where(TrustAnalysis.job_id == job.id)
                .where(TrustAnalysis.is_active.is_(True))
                .values(is_active=False)
            ).rowcount
            if superseded:
                self.logger.info(f"Superseded {superseded} previous analysis for upload {job.id}")

            result = outcome.result
            analysis = TrustAnalysis(
                job_id=job.id,
                owner_id=job.owner_id,
                score=result.score,
                original_score=outcome.original_score if outcome.original_score is not None else result.score,
                traditional_score=result.traditional_score,
                risk_tier=result.risk_tier.value,
                model_version=model_version,
                is_active=True,
                withheld=outcome.withheld,
                computed_at=result.computed_at,
                expires_at=result.expires_at,
                **traits.as_dict(),
            )
            for flag in outcome.flags:
                analysis.bias_flags.append(BiasFlagRecord(
                    type=flag.type.value,
                    severity=flag.severity.value,
                    description=flag.description,
                    mitigation_applied=flag.mitigation_applied,
                    flagged_at=flag.flagged_at,
                    resolved_at=flag.resolved_at,
                ))
            self.db_session.add(analysis)
            return analysis

        return self.safe_operation(_save, f"save analysis for upload {job.id}")

    def get_active(self, job_id) -> TrustAnalysis | None:
        parsed = parse_job_id(job_id)
        if parsed is None:
            return None

        def _active():
            return self.db_session.execute(
                db.select(TrustAnalysis)
                .where(TrustAnalysis.job_id == parsed)
                .where(TrustAnalysis.is_active.is_(True))
            ).scalars().first()

        return self.safe_query(_active, f"get active analysis for upload {parsed}")

    def cohort_rows(self, limit: int = 1000, exclude_owner: str | None = None) -> list[TrustAnalysis]:
        """Recent active, released analyses used as the comparison cohort"""
        def _rows():
            query = (
                db.select(TrustAnalysis)
                .where(TrustAnalysis.is_active.is_(True))
                .where(TrustAnalysis.withheld.is_(False))
            )
            if exclude_owner is not None:
                query = query.where(TrustAnalysis.owner_id != exclude_owner)
            return self.db_session.execute(
                query.order_by(TrustAnalysis.created_at.desc()).limit(limit)
            ).scalars().all()

        return self.safe_query(_rows, "load cohort analyses")
