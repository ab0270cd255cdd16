"""Pydantic schemas for API request/response validation.

This module defines the data contracts for the ReviewPulse REST API:
brands, review sources, manual refresh, sentiment corrections, the
activity ledger and success metrics.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# Enums for API validation


class SourceTypeEnum(str, Enum):
    """Supported review platforms."""

    GOOGLE = "GOOGLE"
    FACEBOOK = "FACEBOOK"
    TRUSTPILOT = "TRUSTPILOT"


class AuthMethodEnum(str, Enum):
    """How a platform is accessed."""

    API = "API"
    SCRAPING = "SCRAPING"


class SentimentEnum(str, Enum):
    """Sentiment labels."""

    POSITIVE = "POSITIVE"
    NEUTRAL = "NEUTRAL"
    NEGATIVE = "NEGATIVE"


# Brand schemas


class BrandCreate(BaseModel):
    """Request schema for creating the caller's brand."""

    name: str = Field(..., min_length=1, max_length=255)


class BrandResponse(BaseModel):
    """Response schema for a brand, with its refresh window."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    user_id: str
    last_manual_refresh_at: datetime | None = None
    first_source_configured_at: datetime | None = None
    can_manual_refresh: bool = True
    next_manual_refresh_available_at: datetime | None = None
    source_count: int = 0
    created_at: datetime
    updated_at: datetime


# Review source schemas


class ReviewSourceCreate(BaseModel):
    """Request schema for configuring a review source."""

    platform_type: SourceTypeEnum
    profile_url: str = Field(..., min_length=1, max_length=2048)
    external_profile_id: str = Field(..., min_length=1, max_length=255)
    auth_method: AuthMethodEnum = AuthMethodEnum.SCRAPING
    credentials: dict[str, Any] | None = Field(
        None, description="Platform credentials; stored encrypted, never returned"
    )


class ReviewSourceUpdate(BaseModel):
    """Request schema for partially updating a review source."""

    is_active: bool | None = None
    profile_url: str | None = Field(None, min_length=1, max_length=2048)


class ReviewSourceResponse(BaseModel):
    """Response schema for a review source (credentials omitted)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    brand_id: str
    source_type: SourceTypeEnum
    external_profile_id: str
    profile_url: str
    auth_method: AuthMethodEnum
    is_active: bool
    last_sync_at: datetime | None = None
    last_sync_status: str | None = None
    last_sync_error: str | None = None
    next_scheduled_sync_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ReviewSourceListResponse(BaseModel):
    """Response schema for listing a brand's review sources."""

    sources: list[ReviewSourceResponse]
    total: int


# Manual refresh


class ManualRefreshResponse(BaseModel):
    """Response schema for an accepted manual refresh."""

    brand_id: str
    triggered_at: datetime
    source_ids: list[str]
    job_ids: list[int] = Field(default_factory=list)
    next_manual_refresh_available_at: datetime


# Sentiment


class SentimentUpdate(BaseModel):
    """Request schema for correcting a review's sentiment."""

    sentiment: SentimentEnum


class SentimentUpdateResponse(BaseModel):
    """Response schema for a sentiment correction."""

    review_id: str
    changed: bool
    previous_sentiment: SentimentEnum
    sentiment: SentimentEnum
    change_id: int | None = None


class SentimentChangeResponse(BaseModel):
    """One row of a review's sentiment history."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    review_id: str
    old_sentiment: SentimentEnum
    new_sentiment: SentimentEnum
    change_reason: str
    changed_by_user_id: str | None = None
    changed_at: datetime


class SentimentHistoryResponse(BaseModel):
    review_id: str
    changes: list[SentimentChangeResponse]


# Activity ledger


class ActivityCreate(BaseModel):
    """Request schema for logging a client-side action (login, dashboard view)."""

    activity_type: str = Field(..., min_length=1, max_length=50)
    metadata: dict[str, Any] | None = None


class ActivityResponse(BaseModel):
    """Response schema for a ledger entry."""

    id: int
    user_id: str
    activity_type: str
    occurred_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class PaginationResponse(BaseModel):
    current_page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next: bool
    has_previous: bool


class ActivityListResponse(BaseModel):
    activities: list[ActivityResponse]
    pagination: PaginationResponse


# Sync jobs


class SyncJobResponse(BaseModel):
    """Response schema for one sync job."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    source_id: str
    job_type: str
    status: str
    reviews_fetched: int
    reviews_new: int
    error_message: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class SyncJobListResponse(BaseModel):
    jobs: list[SyncJobResponse]
    pagination: PaginationResponse


# Metrics


class UserSuccessMetricsResponse(BaseModel):
    """Success metrics for one user."""

    user_id: str
    registration_date: datetime | None = None
    time_to_value_minutes: int | None = None
    time_to_value_achieved: bool
    activation_achieved: bool
    retention_achieved: bool
    total_logins: int
    sentiment_corrections: int


class GlobalSuccessMetricsResponse(BaseModel):
    """Cohort metrics over a registration period."""

    period_start: datetime
    period_end: datetime
    total_users: int
    time_to_value_achieved_count: int
    time_to_value_achieved_percentage: float
    average_time_to_value_minutes: float
    activation_achieved_count: int
    activation_achieved_percentage: float
    retention_achieved_count: int
    retention_achieved_percentage: float
