"""Service layer for ReviewPulse.

Provides the business operations for brands, review sources, sync
scheduling, the sentiment audit trail, the activity ledger and success
metrics.
"""

from src.services.activity_service import ActivityPage, ActivityService
from src.services.brand_service import BrandService
from src.services.review_ingest import FetchedReview, IngestResult, ReviewIngestService
from src.services.review_source_service import CreatedSource, NewSource, ReviewSourceService
from src.services.sentiment_audit import CorrectionResult, CorrectionStats, SentimentAuditTrail
from src.services.source_quota import SourceKey, SourceQuotaGuard
from src.services.success_metrics import (
    GlobalSuccessMetrics,
    SuccessMetricsService,
    UserSuccessMetrics,
)
from src.services.sync_job_service import SyncJobPage, SyncJobService
from src.services.sync_scheduler import RefreshResult, RefreshStatus, SyncScheduler
from src.services.sync_sweep import SweepReport, run_sync_sweep

__all__ = [
    "ActivityPage",
    "ActivityService",
    "BrandService",
    "CorrectionResult",
    "CorrectionStats",
    "CreatedSource",
    "FetchedReview",
    "GlobalSuccessMetrics",
    "IngestResult",
    "NewSource",
    "RefreshResult",
    "RefreshStatus",
    "ReviewIngestService",
    "ReviewSourceService",
    "SentimentAuditTrail",
    "SourceKey",
    "SourceQuotaGuard",
    "SuccessMetricsService",
    "SweepReport",
    "SyncJobPage",
    "SyncJobService",
    "SyncScheduler",
    "UserSuccessMetrics",
    "run_sync_sweep",
]
