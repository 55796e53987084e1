"""Subscription, checkout and billing webhook endpoints."""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from noteearly.core import subscription_service, webhook_service
from noteearly.core.billing_gateway import BillingGateway
from noteearly.core.permissions import Actor
from noteearly.db.database import get_session
from noteearly.web.deps import get_admin_actor, get_db, get_gateway
from noteearly.web.schemas import (
    ApiResponse,
    CheckoutRequest,
    CurrentSubscriptionResponse,
    PaymentResponse,
    PlanResponse,
    envelope,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("/plans", response_model=ApiResponse)
def list_plans(session: Session = Depends(get_db)) -> ApiResponse:
    """Active subscription plans, cheapest first."""
    plans = subscription_service.list_plans(session)
    return envelope([PlanResponse.model_validate(p) for p in plans])


@router.get("/current", response_model=ApiResponse)
def get_current_subscription(
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """The caller's plan and subscription (free plan if none)."""
    current = subscription_service.get_current_subscription(session, actor.id)
    return envelope(CurrentSubscriptionResponse.model_validate(current))


@router.post("/checkout", response_model=ApiResponse)
def create_checkout(
    body: CheckoutRequest,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_gateway),
) -> ApiResponse:
    """Start a hosted checkout for a paid plan."""
    result = subscription_service.create_checkout_session(session, gateway, actor.id, body.plan_id)
    return envelope(result, "Checkout session created.")


@router.post("/portal", response_model=ApiResponse)
def create_portal(
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_gateway),
) -> ApiResponse:
    """Open the billing portal."""
    result = subscription_service.create_portal_session(session, gateway, actor.id)
    return envelope(result, "Portal session created.")


@router.post("/cancel", response_model=ApiResponse)
def cancel_subscription(
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_gateway),
) -> ApiResponse:
    """Cancel at the end of the current billing period."""
    result = subscription_service.cancel_subscription(session, gateway, actor.id)
    return envelope(result, "Subscription will be canceled at the end of the billing period.")


@router.post("/reactivate", response_model=ApiResponse)
def reactivate_subscription(
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_gateway),
) -> ApiResponse:
    """Undo a pending cancellation."""
    result = subscription_service.reactivate_subscription(session, gateway, actor.id)
    return envelope(result, "Subscription reactivated.")


@router.get("/payment-history", response_model=ApiResponse)
def get_payment_history(
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    payments = subscription_service.get_payment_history(session, actor.id)
    return envelope([PaymentResponse.model_validate(p) for p in payments])


def _handle_webhook(gateway: BillingGateway, payload: bytes, signature: str | None) -> bool:
    event = gateway.construct_event(payload, signature)
    with get_session() as session:
        return webhook_service.process_event(session, gateway, event)


@router.post("/webhook", status_code=status.HTTP_200_OK)
async def billing_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    gateway: BillingGateway = Depends(get_gateway),
) -> dict[str, Any]:
    """Receive billing provider events.

    The raw body is needed for signature verification, so this endpoint
    reads the request itself and answers with a bare acknowledgement.
    """
    payload = await request.body()
    handled = await run_in_threadpool(_handle_webhook, gateway, payload, stripe_signature)
    logger.debug("webhook.acknowledged", handled=handled)
    return {"received": True}
