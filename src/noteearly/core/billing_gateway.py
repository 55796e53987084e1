"""Billing provider gateway (Stripe).

Thin wrapper over the Stripe SDK so services deal in plain dicts and tests
can swap in a fake. Webhook payloads are verified here and parsed with json,
never through the SDK's object model.
"""

from __future__ import annotations

import json
from typing import Any

import stripe
import structlog

from noteearly.config.app_config import BillingConfig, load_app_config
from noteearly.core.errors import AppError, ValidationError

logger = structlog.get_logger(__name__)


class BillingProviderError(AppError):
    """Raised when a call to the billing provider fails."""

    status_code = 502


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a provider object or a dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def normalize_subscription(sub: Any) -> dict[str, Any]:
    """Flatten a provider subscription into the fields we persist.

    Newer API versions carry the billing period on the subscription item
    rather than the subscription itself; both shapes are accepted.

    Args:
        sub: Subscription as a dict (webhook payload) or SDK object

    Returns:
        Dict with id, customer, status, price_id, current_period_start,
        current_period_end (unix seconds or None) and cancel_at_period_end
    """
    items = _field(_field(sub, "items", {}) or {}, "data", []) or []
    first_item = items[0] if items else None
    price = _field(first_item, "price") if first_item is not None else None

    period_start = _field(sub, "current_period_start")
    period_end = _field(sub, "current_period_end")
    if period_end is None and first_item is not None:
        period_start = _field(first_item, "current_period_start")
        period_end = _field(first_item, "current_period_end")

    return {
        "id": _field(sub, "id"),
        "customer": _field(sub, "customer"),
        "status": _field(sub, "status"),
        "price_id": _field(price, "id") if price is not None else None,
        "current_period_start": period_start,
        "current_period_end": period_end,
        "cancel_at_period_end": bool(_field(sub, "cancel_at_period_end", False)),
    }


class BillingGateway:
    """Stripe-backed billing operations."""

    def __init__(self, config: BillingConfig | None = None):
        self.config = config or load_app_config().billing

    def _api_key(self) -> str:
        api_key = self.config.get_secret_key()
        if not api_key:
            raise BillingProviderError(
                f"Billing is not configured ({self.config.secret_key_env} is not set)."
            )
        return api_key

    def create_customer(self, email: str, name: str | None, profile_id: str) -> str:
        """Create a provider customer and return its id."""
        try:
            customer = stripe.Customer.create(
                api_key=self._api_key(),
                email=email,
                name=name or None,
                metadata={"userId": profile_id},
            )
        except stripe.StripeError as e:
            logger.error("billing.create_customer_failed", profile_id=profile_id, error=str(e))
            raise BillingProviderError("Failed to create customer.") from e
        return customer.id

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        profile_id: str,
    ) -> dict[str, str]:
        """Create a subscription checkout session.

        Returns:
            Dict with "session_id" and "url"
        """
        try:
            session = stripe.checkout.Session.create(
                api_key=self._api_key(),
                customer=customer_id,
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                subscription_data={"metadata": {"userId": profile_id}},
            )
        except stripe.StripeError as e:
            logger.error("billing.checkout_failed", customer_id=customer_id, error=str(e))
            raise BillingProviderError("Failed to create checkout session.") from e
        return {"session_id": session.id, "url": session.url}

    def create_portal_session(self, customer_id: str, return_url: str) -> dict[str, str]:
        """Create a customer billing-portal session."""
        try:
            session = stripe.billing_portal.Session.create(
                api_key=self._api_key(),
                customer=customer_id,
                return_url=return_url,
            )
        except stripe.StripeError as e:
            logger.error("billing.portal_failed", customer_id=customer_id, error=str(e))
            raise BillingProviderError("Failed to create customer portal session.") from e
        return {"url": session.url}

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> dict[str, Any]:
        """Schedule or unschedule cancellation at the end of the period."""
        try:
            sub = stripe.Subscription.modify(
                subscription_id,
                api_key=self._api_key(),
                cancel_at_period_end=cancel,
            )
        except stripe.StripeError as e:
            logger.error("billing.modify_failed", subscription_id=subscription_id, error=str(e))
            raise BillingProviderError("Failed to update subscription.") from e
        return normalize_subscription(sub)

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        """Fetch the current state of a subscription."""
        try:
            sub = stripe.Subscription.retrieve(subscription_id, api_key=self._api_key())
        except stripe.StripeError as e:
            logger.error("billing.retrieve_failed", subscription_id=subscription_id, error=str(e))
            raise BillingProviderError("Failed to fetch subscription.") from e
        return normalize_subscription(sub)

    def construct_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body
            signature: Value of the Stripe-Signature header

        Returns:
            The event as a plain dict

        Raises:
            ValidationError: If the signature is missing or doesn't verify
        """
        secret = self.config.get_webhook_secret()
        if not secret:
            logger.error("webhook.secret_not_set", env=self.config.webhook_secret_env)
            raise ValidationError("Webhook secret not configured.")
        if not signature:
            raise ValidationError("Missing Stripe signature.")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError("Webhook payload is not valid UTF-8.") from e
        try:
            stripe.WebhookSignature.verify_header(body, signature, secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("webhook.signature_invalid", error=str(e))
            raise ValidationError("Webhook signature verification failed.") from e

        try:
            event = json.loads(body)
        except json.JSONDecodeError as e:
            raise ValidationError("Webhook payload is not valid JSON.") from e
        if not isinstance(event, dict) or "type" not in event:
            raise ValidationError("Webhook payload is not an event.")
        return event


_gateway: BillingGateway | None = None


def get_billing_gateway() -> BillingGateway:
    """Get the process-wide billing gateway."""
    global _gateway
    if _gateway is None:
        _gateway = BillingGateway()
    return _gateway
