"""Database models.

Tables:
- profiles: Admins, students and super-admins
- reading_modules: Curated and custom reading content
- vocabulary: Per-paragraph word definitions
- student_progress: One attempt per (student, module)
- paragraph_submissions: Per-paragraph summaries, append-only
- subscription_plans: Plan catalog mirrored from the billing provider
- customer_subscriptions: Billing subscriptions per user
- payment_history: Invoice payments and failures
"""

import uuid
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from noteearly.db.database import Base, utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class Role(str, Enum):
    """Profile roles."""

    ADMIN = "ADMIN"
    STUDENT = "STUDENT"
    SUPER_ADMIN = "SUPER_ADMIN"


class SubscriptionStatus(str, Enum):
    """Subscription status as stored on profiles and subscriptions."""

    FREE = "free"
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"


class PlanTier(str, Enum):
    FREE = "free"
    HOME = "home"
    PRO = "pro"


class ModuleType(str, Enum):
    CURATED = "curated"
    CUSTOM = "custom"


class Genre(str, Enum):
    HISTORY = "History"
    ADVENTURE = "Adventure"
    SCIENCE = "Science"
    NON_FICTION = "Non-Fiction"
    FANTASY = "Fantasy"
    BIOGRAPHY = "Biography"
    MYSTERY = "Mystery"
    SCIENCE_FICTION = "Science-Fiction"
    FOLKTALE = "Folktale"
    CUSTOM = "Custom"


class Language(str, Enum):
    UK = "UK"
    US = "US"


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_new_id)
    role = Column(String(16), nullable=False, default=Role.ADMIN.value, index=True)
    full_name = Column(String(200), nullable=True)
    email = Column(String(320), unique=True, nullable=True, index=True)
    password_hash = Column(String(256), nullable=True)
    pin_hash = Column(String(256), nullable=True)
    avatar_url = Column(String(500), nullable=True)
    # Managing admin (students only)
    admin_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=True, index=True)
    age = Column(Integer, nullable=True)
    reading_level = Column(Integer, nullable=True)
    stripe_customer_id = Column(String(64), unique=True, nullable=True)
    subscription_status = Column(String(32), nullable=False, default=SubscriptionStatus.FREE.value)
    subscription_plan = Column(String(16), nullable=False, default=PlanTier.FREE.value)
    subscription_renewal_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class ReadingModule(Base):
    __tablename__ = "reading_modules"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(200), nullable=False)
    # Ordered list of {"index": int, "text": str}, 1-based
    structured_content = Column(JSON, nullable=False, default=list)
    paragraph_count = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False)
    type = Column(String(16), nullable=False, default=ModuleType.CURATED.value, index=True)
    genre = Column(String(32), nullable=False, default=Genre.CUSTOM.value)
    language = Column(String(2), nullable=False, default=Language.UK.value)
    admin_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=True, index=True)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    estimated_reading_time = Column(Integer, nullable=True)
    author_first_name = Column(String(100), nullable=True)
    author_last_name = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    vocabulary = relationship(
        "Vocabulary",
        back_populates="module",
        cascade="all, delete-orphan",
        order_by="Vocabulary.paragraph_index",
    )


class Vocabulary(Base):
    __tablename__ = "vocabulary"
    __table_args__ = (
        UniqueConstraint("module_id", "paragraph_index", "word", name="uq_vocabulary_module_paragraph_word"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    module_id = Column(String(36), ForeignKey("reading_modules.id", ondelete="CASCADE"), nullable=False, index=True)
    paragraph_index = Column(Integer, nullable=False)
    word = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    module = relationship("ReadingModule", back_populates="vocabulary")


class StudentProgress(Base):
    __tablename__ = "student_progress"
    __table_args__ = (
        UniqueConstraint("student_id", "module_id", name="uq_progress_student_module"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    student_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    module_id = Column(String(36), ForeignKey("reading_modules.id", ondelete="CASCADE"), nullable=False, index=True)
    highest_paragraph_index_reached = Column(Integer, nullable=False, default=0)
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    score = Column(Integer, nullable=True)
    teacher_feedback = Column(Text, nullable=True)
    teacher_feedback_at = Column(DateTime, nullable=True)
    final_summary = Column(Text, nullable=True)
    time_spent_minutes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    module = relationship("ReadingModule")
    student = relationship("Profile")
    submissions = relationship(
        "ParagraphSubmission",
        back_populates="progress",
        cascade="all, delete-orphan",
        order_by="ParagraphSubmission.paragraph_index",
    )


class ParagraphSubmission(Base):
    __tablename__ = "paragraph_submissions"
    __table_args__ = (
        UniqueConstraint("progress_id", "paragraph_index", name="uq_submission_progress_index"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    progress_id = Column(String(36), ForeignKey("student_progress.id", ondelete="CASCADE"), nullable=False, index=True)
    paragraph_index = Column(Integer, nullable=False)
    paragraph_summary = Column(Text, nullable=False)
    cumulative_summary = Column(Text, nullable=False)
    submitted_at = Column(DateTime, default=utcnow, nullable=False)

    progress = relationship("StudentProgress", back_populates="submissions")


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    # Billing provider price id
    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    interval = Column(String(16), nullable=False, default="month")
    tier = Column(String(16), nullable=False, index=True)
    student_limit = Column(Integer, nullable=False)
    module_limit = Column(Integer, nullable=False)
    custom_module_limit = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class CustomerSubscription(Base):
    __tablename__ = "customer_subscriptions"

    # Billing provider subscription id
    id = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(String(64), ForeignKey("subscription_plans.id"), nullable=False)
    stripe_customer_id = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    custom_modules_created_this_period = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    plan = relationship("SubscriptionPlan")


class PaymentHistory(Base):
    __tablename__ = "payment_history"

    # Payment intent id, or invoice-<id> / failed-<id>
    id = Column(String(100), primary_key=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = Column(String(64), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    status = Column(String(16), nullable=False)
    payment_method = Column(String(32), nullable=True)
    receipt_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
