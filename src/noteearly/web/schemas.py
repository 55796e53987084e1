"""Pydantic schemas for Web API.

Request validation and serialization models. Every JSON response is wrapped
in the {status, message, data} envelope, except health and the webhook ack.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from noteearly.db.models import Genre, Language


# =============================================================================
# ENVELOPE
# =============================================================================


class ApiResponse(BaseModel):
    """Standard response envelope."""

    status: str = "success"
    message: str | None = None
    data: Any = None


def envelope(data: Any = None, message: str | None = None) -> ApiResponse:
    """Wrap a payload in a success envelope."""
    return ApiResponse(status="success", message=message, data=data)


# =============================================================================
# AUTH SCHEMAS
# =============================================================================


class AdminSignupRequest(BaseModel):
    """Request body for admin signup."""

    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=8, max_length=128)
    full_name: str = Field(..., min_length=2, max_length=100)


class AdminLoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1)


class StudentCreateRequest(BaseModel):
    """Request body for an admin creating a student."""

    full_name: str = Field(..., min_length=2, max_length=100)
    pin: str = Field(..., pattern=r"^\d{4}$")
    age: int | None = Field(default=None, ge=1, le=120)
    reading_level: int | None = Field(default=None, ge=1, le=10)


class StudentLoginRequest(BaseModel):
    student_id: str = Field(..., min_length=1)
    pin: str = Field(..., min_length=1)


class PasswordResetRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class PinResetRequest(BaseModel):
    student_id: str = Field(..., min_length=1)
    new_pin: str = Field(..., pattern=r"^\d{4}$")


class TokenResponse(BaseModel):
    """Access token plus the logged-in profile."""

    access_token: str
    token_type: str = "bearer"
    profile: ProfileResponse | None = None


# =============================================================================
# PROFILE SCHEMAS
# =============================================================================


class ProfileResponse(BaseModel):
    """Flattened profile with subscription data."""

    profile_id: str
    email: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None
    role: str
    created_at: datetime
    updated_at: datetime
    stripe_customer_id: str | None = None
    subscription_status: str
    subscription_plan: str | None = None
    subscription_renewal_date: datetime | None = None
    # Students only
    admin_id: str | None = None
    age: int | None = None
    reading_level: int | None = None
    completed_modules_count: int | None = None


class ProfileUpdateRequest(BaseModel):
    """Fields a user may change on their own profile."""

    full_name: str | None = Field(default=None, min_length=2, max_length=100)
    avatar_url: str | None = Field(default=None, max_length=2048)


class AdminStudentUpdateRequest(BaseModel):
    """Fields an admin may change on a managed student."""

    full_name: str | None = Field(default=None, min_length=2, max_length=100)
    avatar_url: str | None = Field(default=None, max_length=2048)
    age: int | None = Field(default=None, ge=1, le=120)
    reading_level: int | None = Field(default=None, ge=1, le=10)


# =============================================================================
# PROGRESS SCHEMAS
# =============================================================================


class StartProgressRequest(BaseModel):
    module_id: str = Field(..., min_length=1)


class SubmitSummaryRequest(BaseModel):
    """A student's summary of one paragraph."""

    module_id: str = Field(..., min_length=1)
    paragraph_index: int = Field(..., ge=1, le=40)
    paragraph_summary: str = Field(..., min_length=1, max_length=1000)
    cumulative_summary: str = Field(..., min_length=1, max_length=10000)


class AdminUpdateProgressRequest(BaseModel):
    """Partial update of a progress row by an admin."""

    score: int | None = Field(default=None, ge=0, le=100)
    teacher_feedback: str | None = Field(default=None, max_length=2000)
    completed: bool | None = None
    time_spent_minutes: int | None = Field(default=None, ge=0, le=1440)

    @field_validator("completed")
    @classmethod
    def completed_not_null(cls, value: bool | None) -> bool:
        if value is None:
            raise ValueError("must be true or false")
        return value


class ProgressResponse(BaseModel):
    id: str
    student_id: str
    module_id: str
    highest_paragraph_index_reached: int
    completed: bool
    completed_at: datetime | None = None
    started_at: datetime | None = None
    score: int | None = None
    teacher_feedback: str | None = None
    teacher_feedback_at: datetime | None = None
    final_summary: str | None = None
    time_spent_minutes: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SubmissionResponse(BaseModel):
    id: str
    progress_id: str
    paragraph_index: int
    paragraph_summary: str
    cumulative_summary: str
    submitted_at: datetime

    model_config = {"from_attributes": True}


class ProgressDetailsResponse(BaseModel):
    """Progress row (None if not started) with its submissions."""

    progress: ProgressResponse | None = None
    submissions: list[SubmissionResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ProgressStatus(BaseModel):
    completed: bool
    highest_paragraph_index_reached: int
    final_summary: str | None = None


class SubmitSummaryResult(BaseModel):
    submission_id: str
    progress_status: ProgressStatus


# =============================================================================
# READING MODULE SCHEMAS
# =============================================================================


class Paragraph(BaseModel):
    index: int = Field(..., ge=1)
    text: str = Field(..., min_length=1, max_length=5000)


class ModuleCreateRequest(BaseModel):
    """Request body for creating a custom or curated module."""

    title: str = Field(..., min_length=1, max_length=255)
    structured_content: list[Paragraph] = Field(..., min_length=1, max_length=40)
    level: int = Field(..., ge=1, le=10)
    genre: Genre
    language: Language
    description: str | None = Field(default=None, max_length=2000)
    image_url: str | None = Field(default=None, max_length=2048)
    estimated_reading_time: int | None = Field(default=None, ge=1, le=1440)
    author_first_name: str | None = Field(default=None, max_length=100)
    author_last_name: str | None = Field(default=None, max_length=100)
    is_active: bool | None = None

    model_config = {"use_enum_values": True}


class ModuleUpdateRequest(BaseModel):
    """Partial module update; at least one field required."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    structured_content: list[Paragraph] | None = Field(default=None, min_length=1, max_length=40)
    level: int | None = Field(default=None, ge=1, le=10)
    genre: Genre | None = None
    language: Language | None = None
    description: str | None = Field(default=None, max_length=2000)
    image_url: str | None = Field(default=None, max_length=2048)
    estimated_reading_time: int | None = Field(default=None, ge=1, le=1440)
    author_first_name: str | None = Field(default=None, max_length=100)
    author_last_name: str | None = Field(default=None, max_length=100)
    is_active: bool | None = None

    model_config = {"use_enum_values": True}


class ModuleResponse(BaseModel):
    id: str
    title: str
    structured_content: list[Paragraph]
    paragraph_count: int
    level: int
    type: str
    genre: str
    language: str
    admin_id: str | None = None
    description: str | None = None
    image_url: str | None = None
    estimated_reading_time: int | None = None
    author_first_name: str | None = None
    author_last_name: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class VocabularyCreateRequest(BaseModel):
    paragraph_index: int = Field(..., ge=1, le=40)
    word: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)


class VocabularyUpdateRequest(BaseModel):
    paragraph_index: int | None = Field(default=None, ge=1)
    word: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, min_length=1, max_length=1000)


class VocabularyResponse(BaseModel):
    id: str
    module_id: str
    paragraph_index: int
    word: str
    description: str

    model_config = {"from_attributes": True}


# =============================================================================
# SUBSCRIPTION SCHEMAS
# =============================================================================


class PlanResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    price: float
    interval: str
    tier: str
    student_limit: int
    module_limit: int
    custom_module_limit: int
    is_active: bool

    model_config = {"from_attributes": True}


class SubscriptionResponse(BaseModel):
    id: str
    user_id: str
    plan_id: str
    stripe_customer_id: str
    status: str
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool
    custom_modules_created_this_period: int

    model_config = {"from_attributes": True}


class CurrentSubscriptionResponse(BaseModel):
    plan: PlanResponse
    subscription: SubscriptionResponse | None = None

    model_config = {"from_attributes": True}


class CheckoutRequest(BaseModel):
    plan_id: str = Field(..., min_length=1)


class PaymentResponse(BaseModel):
    id: str
    subscription_id: str | None = None
    amount: float
    currency: str
    status: str
    payment_method: str | None = None
    receipt_url: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


# =============================================================================
# HEALTH SCHEMAS
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    timestamp: str
    database: str = "ok"


TokenResponse.model_rebuild()
