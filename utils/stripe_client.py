"""
Stripe API Client Wrapper
Handles all Stripe interactions for subscription billing.

Every call passes the key the client was constructed with; the module-level
``stripe.api_key`` is never set.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any

import stripe

from utils.dates import from_timestamp

logger = logging.getLogger(__name__)

RESOURCE_MISSING = "resource_missing"


class ProcessorError(Exception):
    """A Stripe call failed. ``code`` is Stripe's error code when there is one."""

    def __init__(self, message: str, code: Optional[str] = None, http_status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status

    @property
    def resource_missing(self) -> bool:
        return self.code == RESOURCE_MISSING


class WebhookSignatureError(Exception):
    pass


@dataclass
class ProcessorSubscription:
    id: str
    status: str
    cancel_at_period_end: bool
    current_period_end: Optional[datetime]
    price_id: Optional[str]
    item_id: Optional[str]
    customer_id: Optional[str]


def get_field(obj, key: str, default=None):
    """Read a field from a Stripe object or plain dict."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, AttributeError):
        return default
    return default if value is None else value


def id_of(value) -> Optional[str]:
    """Expandable fields arrive either as an ID string or as an object."""
    if value is None or isinstance(value, str):
        return value
    return get_field(value, "id")


def to_plain_dict(value) -> Dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return dict(value)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return dict(value)


def to_subscription(obj) -> ProcessorSubscription:
    """Normalize a Stripe subscription object."""
    items = get_field(get_field(obj, "items"), "data", [])
    first_item = items[0] if items else None
    # Newer API versions moved the billing period onto the subscription item
    period_end = get_field(obj, "current_period_end") or get_field(first_item, "current_period_end")
    return ProcessorSubscription(
        id=get_field(obj, "id"),
        status=get_field(obj, "status", "unknown"),
        cancel_at_period_end=bool(get_field(obj, "cancel_at_period_end", False)),
        current_period_end=from_timestamp(period_end),
        price_id=get_field(get_field(first_item, "price"), "id"),
        item_id=get_field(first_item, "id"),
        customer_id=id_of(get_field(obj, "customer")),
    )


class StripeClient:
    def __init__(self, api_key: str, webhook_secret: Optional[str] = None):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def _wrap(self, action: str, err: stripe.StripeError) -> ProcessorError:
        message = getattr(err, "user_message", None) or str(err)
        code = getattr(err, "code", None)
        http_status = getattr(err, "http_status", None)
        logger.error(f"Stripe {action} failed: {http_status} {code} - {message}")
        return ProcessorError(message, code=code, http_status=http_status)

    def retrieve_subscription(self, subscription_id: str) -> ProcessorSubscription:
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=self.api_key)
        except stripe.StripeError as e:
            raise self._wrap("retrieve subscription", e) from e
        return to_subscription(subscription)

    def create_customer(self, email: str, metadata: Dict[str, str]) -> str:
        try:
            customer = stripe.Customer.create(email=email, metadata=metadata, api_key=self.api_key)
        except stripe.StripeError as e:
            raise self._wrap("create customer", e) from e
        logger.info(f"Created Stripe customer {customer['id']} for {email}")
        return customer["id"]

    def swap_subscription_price(self, subscription: ProcessorSubscription, price_id: str) -> ProcessorSubscription:
        """
        Swap the subscription's single item to a new price with prorated billing.
        Clears any pending cancellation, so a plan change also reactivates renewal.
        """
        try:
            updated = stripe.Subscription.modify(
                subscription.id,
                items=[{"id": subscription.item_id, "price": price_id}],
                proration_behavior="create_prorations",
                cancel_at_period_end=False,
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            raise self._wrap("swap subscription price", e) from e
        logger.info(f"Swapped subscription {subscription.id} to price {price_id}")
        return to_subscription(updated)

    def cancel_at_period_end(self, subscription_id: str) -> ProcessorSubscription:
        try:
            updated = stripe.Subscription.modify(
                subscription_id,
                cancel_at_period_end=True,
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            raise self._wrap("cancel at period end", e) from e
        return to_subscription(updated)

    def cancel_subscription(self, subscription_id: str) -> ProcessorSubscription:
        """Cancel immediately."""
        try:
            canceled = stripe.Subscription.cancel(subscription_id, api_key=self.api_key)
        except stripe.StripeError as e:
            raise self._wrap("cancel subscription", e) from e
        return to_subscription(canceled)

    def create_checkout_session(
        self,
        price_id: str,
        customer_id: Optional[str],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
        if customer_id:
            params["customer"] = customer_id
        try:
            session = stripe.checkout.Session.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            raise self._wrap("create checkout session", e) from e
        return {"id": session["id"], "url": get_field(session, "url")}

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            raise self._wrap("retrieve checkout session", e) from e
        return {
            "id": get_field(session, "id"),
            "mode": get_field(session, "mode"),
            "payment_status": get_field(session, "payment_status"),
            "subscription_id": id_of(get_field(session, "subscription")),
            "customer_id": id_of(get_field(session, "customer")),
            "metadata": to_plain_dict(get_field(session, "metadata", {})),
        }

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify a webhook payload and return ``{"id", "type", "object"}``.
        """
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(f"Invalid signature: {e}") from e
        return {
            "id": get_field(event, "id"),
            "type": get_field(event, "type"),
            "object": get_field(get_field(event, "data"), "object"),
        }
