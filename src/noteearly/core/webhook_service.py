"""Billing provider webhook handling.

Verified events are dispatched by type. Each handler upserts the local
subscription and payment rows and mirrors the resulting status, plan tier
and renewal date onto the owner's profile. Events that reference unknown
customers, subscriptions or plans are logged and acknowledged.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from noteearly.core.billing_gateway import BillingGateway, BillingProviderError, normalize_subscription
from noteearly.db.models import (
    CustomerSubscription,
    PaymentHistory,
    PlanTier,
    Profile,
    SubscriptionPlan,
    SubscriptionStatus,
)

logger = structlog.get_logger(__name__)

KNOWN_STATUSES = {s.value for s in SubscriptionStatus}


def map_provider_status(provider_status: str | None) -> str:
    """Map a provider subscription status onto our status values.

    `active` and `trialing` both count as active; other statuses we know
    pass through; anything else becomes `incomplete`.
    """
    if provider_status in ("active", "trialing"):
        return SubscriptionStatus.ACTIVE.value
    if provider_status in KNOWN_STATUSES:
        return provider_status
    logger.warning("webhook.unhandled_status", status=provider_status)
    return SubscriptionStatus.INCOMPLETE.value


def _from_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def _profile_by_customer(session: Session, customer_id: str | None) -> Profile | None:
    if not customer_id:
        return None
    return session.scalars(select(Profile).where(Profile.stripe_customer_id == customer_id)).first()


def _invoice_subscription_id(invoice: dict[str, Any]) -> str | None:
    """Subscription id of an invoice, across API versions."""
    sub = invoice.get("subscription")
    if isinstance(sub, dict):
        return sub.get("id")
    if sub:
        return sub
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return details.get("subscription")


def handle_checkout_completed(session: Session, gateway: BillingGateway, obj: dict[str, Any]) -> None:
    """Checkout finished; the subscription itself arrives in its own event."""
    logger.info(
        "webhook.checkout_completed",
        session_id=obj.get("id"),
        customer=obj.get("customer"),
        subscription=obj.get("subscription"),
    )


def handle_subscription_created(session: Session, gateway: BillingGateway, obj: dict[str, Any]) -> None:
    sub = normalize_subscription(obj)
    if not sub["price_id"]:
        logger.error("webhook.subscription_missing_price", subscription_id=sub["id"])
        return

    profile = _profile_by_customer(session, sub["customer"])
    if profile is None:
        logger.error("webhook.customer_not_found", customer=sub["customer"], subscription_id=sub["id"])
        return

    plan = session.get(SubscriptionPlan, sub["price_id"])
    if plan is None:
        logger.error("webhook.plan_not_found", price_id=sub["price_id"], subscription_id=sub["id"])
        return

    status = map_provider_status(sub["status"])
    row = session.get(CustomerSubscription, sub["id"])
    if row is None:
        row = CustomerSubscription(id=sub["id"], user_id=profile.id, custom_modules_created_this_period=0)
        session.add(row)
    row.plan_id = plan.id
    row.stripe_customer_id = sub["customer"]
    row.status = status
    row.current_period_start = _from_timestamp(sub["current_period_start"])
    row.current_period_end = _from_timestamp(sub["current_period_end"])
    row.cancel_at_period_end = sub["cancel_at_period_end"]

    profile.subscription_status = status
    profile.subscription_plan = plan.tier
    profile.subscription_renewal_date = row.current_period_end
    session.flush()

    logger.info("webhook.subscription_created", subscription_id=row.id, user_id=profile.id, tier=plan.tier, status=status)


def handle_subscription_updated(session: Session, gateway: BillingGateway, obj: dict[str, Any]) -> None:
    sub = normalize_subscription(obj)
    row = session.get(CustomerSubscription, sub["id"])
    if row is None:
        logger.error("webhook.subscription_not_found", subscription_id=sub["id"])
        return

    new_tier = None
    if sub["price_id"]:
        plan = session.get(SubscriptionPlan, sub["price_id"])
        if plan is not None:
            row.plan_id = plan.id
            new_tier = plan.tier
        else:
            logger.warning("webhook.plan_not_found", price_id=sub["price_id"], subscription_id=sub["id"])

    new_period_start = _from_timestamp(sub["current_period_start"])
    if new_period_start is not None and new_period_start != row.current_period_start:
        # New billing period resets the custom module allowance
        row.custom_modules_created_this_period = 0

    status = map_provider_status(sub["status"])
    row.status = status
    row.current_period_start = new_period_start
    row.current_period_end = _from_timestamp(sub["current_period_end"])
    row.cancel_at_period_end = sub["cancel_at_period_end"]

    profile = session.get(Profile, row.user_id)
    if profile is not None:
        profile.subscription_status = status
        profile.subscription_renewal_date = row.current_period_end
        if new_tier:
            profile.subscription_plan = new_tier
    session.flush()

    logger.info("webhook.subscription_updated", subscription_id=row.id, user_id=row.user_id, status=status, tier=new_tier)


def handle_subscription_deleted(session: Session, gateway: BillingGateway, obj: dict[str, Any]) -> None:
    sub = normalize_subscription(obj)
    row = session.get(CustomerSubscription, sub["id"])
    if row is None:
        logger.warning("webhook.subscription_not_found", subscription_id=sub["id"])
        return

    status = map_provider_status(sub["status"])
    row.status = status
    row.current_period_start = None
    row.current_period_end = None
    row.cancel_at_period_end = False

    profile = session.get(Profile, row.user_id)
    if profile is not None:
        profile.subscription_status = (
            SubscriptionStatus.CANCELED.value if status == SubscriptionStatus.CANCELED.value else SubscriptionStatus.FREE.value
        )
        profile.subscription_plan = PlanTier.FREE.value
        profile.subscription_renewal_date = None
    session.flush()

    logger.info("webhook.subscription_deleted", subscription_id=row.id, user_id=row.user_id, status=status)


def _record_payment(
    session: Session,
    payment_id: str,
    profile: Profile,
    subscription_id: str,
    invoice: dict[str, Any],
    amount_cents: Any,
    status: str,
) -> None:
    if session.get(PaymentHistory, payment_id) is not None:
        logger.info("webhook.payment_already_recorded", payment_id=payment_id)
        return
    session.add(
        PaymentHistory(
            id=payment_id,
            user_id=profile.id,
            subscription_id=subscription_id,
            amount=Decimal(int(amount_cents or 0)) / 100,
            currency=invoice.get("currency") or "usd",
            status=status,
            payment_method=invoice.get("collection_method") or "unknown",
            receipt_url=invoice.get("hosted_invoice_url"),
        )
    )


def handle_invoice_paid(session: Session, gateway: BillingGateway, obj: dict[str, Any]) -> None:
    subscription_id = _invoice_subscription_id(obj)
    if not obj.get("customer") or not subscription_id:
        logger.error("webhook.invoice_missing_refs", invoice_id=obj.get("id"))
        return

    profile = _profile_by_customer(session, obj["customer"])
    if profile is None:
        logger.error("webhook.customer_not_found", customer=obj["customer"], invoice_id=obj.get("id"))
        return

    payment_intent = obj.get("payment_intent")
    payment_id = payment_intent if isinstance(payment_intent, str) else f"invoice-{obj.get('id')}"
    _record_payment(session, payment_id, profile, subscription_id, obj, obj.get("amount_paid"), "succeeded")
    session.flush()
    logger.info("webhook.invoice_paid", invoice_id=obj.get("id"), user_id=profile.id, payment_id=payment_id)

    try:
        sub = gateway.retrieve_subscription(subscription_id)
    except BillingProviderError as e:
        logger.error("webhook.subscription_fetch_failed", subscription_id=subscription_id, error=str(e))
        return

    renewal = _from_timestamp(sub.get("current_period_end"))
    if renewal is None:
        logger.error("webhook.subscription_missing_period", subscription_id=subscription_id)
        return

    profile.subscription_status = SubscriptionStatus.ACTIVE.value
    profile.subscription_renewal_date = renewal
    if sub.get("price_id"):
        plan = session.get(SubscriptionPlan, sub["price_id"])
        if plan is not None:
            profile.subscription_plan = plan.tier
    session.flush()


def handle_invoice_payment_failed(session: Session, gateway: BillingGateway, obj: dict[str, Any]) -> None:
    subscription_id = _invoice_subscription_id(obj)
    if not obj.get("customer") or not subscription_id:
        logger.error("webhook.invoice_missing_refs", invoice_id=obj.get("id"))
        return

    profile = _profile_by_customer(session, obj["customer"])
    if profile is None:
        logger.error("webhook.customer_not_found", customer=obj["customer"], invoice_id=obj.get("id"))
        return

    payment_intent = obj.get("payment_intent")
    payment_id = payment_intent if isinstance(payment_intent, str) else f"failed-{obj.get('id')}"
    _record_payment(session, payment_id, profile, subscription_id, obj, obj.get("amount_due"), "failed")

    row = session.get(CustomerSubscription, subscription_id)
    if row is not None:
        row.status = SubscriptionStatus.PAST_DUE.value
    profile.subscription_status = SubscriptionStatus.PAST_DUE.value
    session.flush()

    logger.info("webhook.invoice_payment_failed", invoice_id=obj.get("id"), user_id=profile.id)


EVENT_HANDLERS: dict[str, Callable[[Session, BillingGateway, dict[str, Any]], None]] = {
    "checkout.session.completed": handle_checkout_completed,
    "customer.subscription.created": handle_subscription_created,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.paid": handle_invoice_paid,
    "invoice.payment_failed": handle_invoice_payment_failed,
}


def process_event(session: Session, gateway: BillingGateway, event: dict[str, Any]) -> bool:
    """Dispatch a verified event to its handler.

    Returns:
        True if the event type was handled, False if it was only acknowledged
    """
    event_type = event.get("type", "")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("webhook.unhandled_event", event_type=event_type, event_id=event.get("id"))
        return False

    logger.info("webhook.processing", event_type=event_type, event_id=event.get("id"))
    handler(session, gateway, (event.get("data") or {}).get("object") or {})
    return True
