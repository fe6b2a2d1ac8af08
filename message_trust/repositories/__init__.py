"""
Repository layer for data access
"""

from .analysis_repository import AnalysisRepository
from .transient_content_repository import TransientContentRepository
from .upload_job_repository import UploadJobRepository


__all__ = [
    'AnalysisRepository',
    'TransientContentRepository',
    'UploadJobRepository',
]
