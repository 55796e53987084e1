"""Subscription plans, plan limits and billing actions.

The plan catalog is mirrored from data/config/plans_v1.yaml into the
subscription_plans table. A user without a subscription row is on the free
plan. Changes to a subscription made here (cancel, reactivate) are only
requested from the billing provider; the local rows follow through webhooks.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from noteearly.config.app_config import load_app_config
from noteearly.config.plans import PlanDefinition, list_plans as list_catalog_plans
from noteearly.core.billing_gateway import BillingGateway
from noteearly.core.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from noteearly.db.models import (
    CustomerSubscription,
    ModuleType,
    PaymentHistory,
    PlanTier,
    Profile,
    ReadingModule,
    Role,
    SubscriptionPlan,
    SubscriptionStatus,
)

logger = structlog.get_logger(__name__)


@dataclass
class CurrentSubscription:
    """A user's plan and, when they have one, their subscription row."""

    plan: SubscriptionPlan
    subscription: CustomerSubscription | None


def sync_plans(session: Session, plans: list[PlanDefinition] | None = None) -> list[SubscriptionPlan]:
    """Upsert the plan catalog into the database.

    Args:
        session: Database session
        plans: Plan definitions (defaults to the configured catalog)

    Returns:
        The synced plan rows
    """
    definitions = plans if plans is not None else list_catalog_plans()
    rows = []
    for definition in definitions:
        # One active plan per tier; a re-priced plan retires the old row
        stale_rows = session.scalars(
            select(SubscriptionPlan).where(
                SubscriptionPlan.tier == definition.tier,
                SubscriptionPlan.id != definition.id,
                SubscriptionPlan.is_active.is_(True),
            )
        )
        for stale in stale_rows:
            stale.is_active = False

        row = session.get(SubscriptionPlan, definition.id)
        if row is None:
            row = SubscriptionPlan(id=definition.id, tier=definition.tier)
            session.add(row)

        row.name = definition.name
        row.description = definition.description or None
        row.price = Decimal(definition.price)
        row.interval = definition.interval
        row.tier = definition.tier
        row.student_limit = definition.student_limit
        row.module_limit = definition.module_limit
        row.custom_module_limit = definition.custom_module_limit
        row.is_active = definition.is_active
        rows.append(row)

    session.flush()
    logger.info("plans.synced", count=len(rows), tiers=[r.tier for r in rows])
    return rows


def list_plans(session: Session) -> list[SubscriptionPlan]:
    """Active plans, syncing the catalog first if the table is empty."""
    stmt = select(SubscriptionPlan).where(SubscriptionPlan.is_active.is_(True)).order_by(SubscriptionPlan.price)
    plans = list(session.scalars(stmt))
    if not plans:
        logger.info("plans.empty_syncing_catalog")
        sync_plans(session)
        plans = list(session.scalars(stmt))
    return plans


def get_user_subscription(session: Session, user_id: str) -> CustomerSubscription | None:
    """The user's most recent subscription row, if any."""
    return session.scalars(
        select(CustomerSubscription)
        .where(CustomerSubscription.user_id == user_id)
        .order_by(CustomerSubscription.created_at.desc())
    ).first()


def get_current_subscription(session: Session, user_id: str) -> CurrentSubscription:
    """Resolve the user's plan, falling back to the free plan.

    Raises:
        NotFoundError: If no free plan is configured, or the subscription
            points at an unknown plan
    """
    subscription = get_user_subscription(session, user_id)
    if subscription is None:
        free_plan = session.scalars(
            select(SubscriptionPlan).where(
                SubscriptionPlan.tier == PlanTier.FREE.value,
                SubscriptionPlan.is_active.is_(True),
            )
        ).first()
        if free_plan is None:
            raise NotFoundError("No free plan found.")
        return CurrentSubscription(plan=free_plan, subscription=None)

    plan = session.get(SubscriptionPlan, subscription.plan_id)
    if plan is None:
        raise NotFoundError("Subscription plan not found.")
    return CurrentSubscription(plan=plan, subscription=subscription)


def ensure_student_capacity(session: Session, admin_id: str) -> None:
    """Raise if the admin's plan has no room for another student."""
    current = get_current_subscription(session, admin_id)
    student_count = session.scalar(
        select(func.count(Profile.id)).where(
            Profile.admin_id == admin_id,
            Profile.role == Role.STUDENT.value,
        )
    ) or 0

    if student_count >= current.plan.student_limit:
        raise PermissionDeniedError(
            f"Student limit ({current.plan.student_limit}) for your current plan "
            f"('{current.plan.tier}') has been reached. Please upgrade to create more students."
        )


def ensure_custom_module_capacity(session: Session, admin_id: str) -> CurrentSubscription:
    """Raise if the admin can't create another custom module.

    Free tier counts every custom module the admin owns; paid tiers count
    modules created in the current billing period.
    """
    current = get_current_subscription(session, admin_id)
    limit = current.plan.custom_module_limit

    if current.plan.tier == PlanTier.FREE.value or current.subscription is None:
        used = session.scalar(
            select(func.count(ReadingModule.id)).where(
                ReadingModule.admin_id == admin_id,
                ReadingModule.type == ModuleType.CUSTOM.value,
            )
        ) or 0
    else:
        used = current.subscription.custom_modules_created_this_period

    if used >= limit:
        raise PermissionDeniedError(
            f"Custom module limit ({limit}) for your current plan ('{current.plan.tier}') "
            "has been reached. Please upgrade to create more modules."
        )
    return current


def record_custom_module_created(session: Session, current: CurrentSubscription) -> None:
    """Bump the per-period counter on paid subscriptions."""
    if current.subscription is not None and current.plan.tier != PlanTier.FREE.value:
        current.subscription.custom_modules_created_this_period += 1
        session.flush()


def _ensure_customer(session: Session, gateway: BillingGateway, profile: Profile) -> str:
    """Get the profile's billing customer id, creating one if needed."""
    if profile.stripe_customer_id:
        return profile.stripe_customer_id

    customer_id = gateway.create_customer(
        email=profile.email or f"user+{profile.id}@noteearly.com",
        name=profile.full_name,
        profile_id=profile.id,
    )
    profile.stripe_customer_id = customer_id
    session.flush()
    logger.info("billing.customer_created", user_id=profile.id, customer_id=customer_id)
    return customer_id


def _billing_profile(session: Session, user_id: str) -> Profile:
    profile = session.get(Profile, user_id)
    if profile is None:
        raise NotFoundError("User not found.")
    if profile.role == Role.STUDENT.value:
        raise PermissionDeniedError("Students cannot manage subscriptions.")
    return profile


def create_checkout_session(
    session: Session, gateway: BillingGateway, user_id: str, plan_id: str
) -> dict[str, str]:
    """Start a checkout for a paid plan.

    Raises:
        NotFoundError: If the plan or user doesn't exist
        ValidationError: If the user already has this plan active
    """
    plan = session.get(SubscriptionPlan, plan_id)
    if plan is None or not plan.is_active:
        raise NotFoundError("Subscription plan not found.")
    if plan.tier == PlanTier.FREE.value:
        raise ValidationError("The free plan does not require checkout.")

    profile = _billing_profile(session, user_id)

    existing = get_user_subscription(session, user_id)
    if existing is not None and existing.plan_id == plan_id and existing.status == SubscriptionStatus.ACTIVE.value:
        raise ValidationError("User is already actively subscribed to this plan.")

    customer_id = existing.stripe_customer_id if existing is not None else _ensure_customer(session, gateway, profile)
    client_url = load_app_config().billing.client_url
    result = gateway.create_checkout_session(
        customer_id=customer_id,
        price_id=plan_id,
        success_url=f"{client_url}/subscription/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{client_url}/subscription/cancel",
        profile_id=user_id,
    )
    logger.info("billing.checkout_created", user_id=user_id, plan_id=plan_id, session_id=result.get("session_id"))
    return result


def create_portal_session(session: Session, gateway: BillingGateway, user_id: str) -> dict[str, str]:
    """Open the billing provider's customer portal."""
    profile = _billing_profile(session, user_id)
    if not profile.stripe_customer_id:
        raise NotFoundError("Billing customer not found for this user.")

    client_url = load_app_config().billing.client_url
    return gateway.create_portal_session(profile.stripe_customer_id, f"{client_url}/admin/settings/subscription")


def cancel_subscription(session: Session, gateway: BillingGateway, user_id: str) -> dict:
    """Request cancellation at the end of the current period.

    Raises:
        NotFoundError: If the user has no subscription
        ValidationError: If the subscription isn't active
    """
    subscription = get_user_subscription(session, user_id)
    if subscription is None:
        raise NotFoundError("No active subscription found.")
    if subscription.status != SubscriptionStatus.ACTIVE.value:
        raise ValidationError("Subscription is not active.")

    result = gateway.set_cancel_at_period_end(subscription.id, True)
    logger.info("billing.cancel_requested", user_id=user_id, subscription_id=subscription.id)
    return result


def reactivate_subscription(session: Session, gateway: BillingGateway, user_id: str) -> dict:
    """Undo a pending cancellation.

    Raises:
        NotFoundError: If the user has no subscription
        ValidationError: Unless the subscription is active and set to cancel
    """
    subscription = get_user_subscription(session, user_id)
    if subscription is None:
        raise NotFoundError("No subscription found for user.")
    if subscription.status != SubscriptionStatus.ACTIVE.value or not subscription.cancel_at_period_end:
        raise ValidationError("Subscription cannot be reactivated.")

    result = gateway.set_cancel_at_period_end(subscription.id, False)
    logger.info("billing.reactivate_requested", user_id=user_id, subscription_id=subscription.id)
    return result


def get_payment_history(session: Session, user_id: str) -> list[PaymentHistory]:
    """Recorded payments for a user, newest first."""
    return list(
        session.scalars(
            select(PaymentHistory)
            .where(PaymentHistory.user_id == user_id)
            .order_by(PaymentHistory.created_at.desc())
        )
    )
