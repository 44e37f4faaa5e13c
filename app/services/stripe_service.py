import stripe
import asyncio
import logging
from typing import Optional, Dict, Any

from app.utils.utils import get_field

logger = logging.getLogger(__name__)


class StripeService:
    """Thin wrapper over the Stripe SDK bound to one API key and version.

    Every call passes the key and version per request, so several services
    with different credentials can live in one process.
    """

    def __init__(self, api_key: str, webhook_secret: Optional[str] = None, api_version: Optional[str] = None):
        self.api_key = api_key
        self.webhook_secret = webhook_secret or None
        self.api_version = api_version

    def _request_options(self) -> Dict[str, Any]:
        options = {"api_key": self.api_key}
        if self.api_version:
            options["stripe_version"] = self.api_version
        return options

    async def create_customer(self, uid: str) -> Any:
        """Create a Stripe customer tagged with the application uid"""
        return await asyncio.to_thread(
            stripe.Customer.create,
            metadata={"uid": uid},
            **self._request_options()
        )

    async def create_ephemeral_key(self, customer_id: str) -> Any:
        """Create a short-lived key the mobile payment sheet uses for this customer"""
        return await asyncio.to_thread(
            stripe.EphemeralKey.create,
            customer=customer_id,
            **self._request_options()
        )

    async def create_subscription(self, customer_id: str, price_id: str) -> Any:
        """Create an incomplete subscription whose first invoice is paid client-side"""
        return await asyncio.to_thread(
            stripe.Subscription.create,
            customer=customer_id,
            items=[{"price": price_id}],
            payment_behavior="default_incomplete",
            expand=["latest_invoice.payment_intent"],
            **self._request_options()
        )

    async def cancel_at_period_end(self, subscription_id: str) -> Any:
        """Ask Stripe to end the subscription when the current period runs out"""
        return await asyncio.to_thread(
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=True,
            **self._request_options()
        )

    async def get_uid_for_customer(self, customer_id: str) -> Optional[str]:
        """Read the application uid stored in the customer's metadata"""
        customer = await asyncio.to_thread(
            stripe.Customer.retrieve,
            customer_id,
            **self._request_options()
        )
        metadata = getattr(customer, "metadata", None) or {}
        return metadata.get("uid") or None

    def construct_event(self, payload: bytes, signature: str) -> Any:
        """Verify the signature over the raw payload.

        Raises ``ValueError`` for an unparseable payload and
        ``stripe.error.SignatureVerificationError`` for a bad signature.
        """
        return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)

    @staticmethod
    def extract_plan_id(subscription: Dict[str, Any]) -> Optional[str]:
        """Price id of the subscription's first item"""
        return get_field(subscription, "items", "data", 0, "price", "id")

    @staticmethod
    def extract_period(subscription: Dict[str, Any]) -> Dict[str, Optional[int]]:
        """Current period bounds as Unix timestamps.

        Newer API versions only carry the period on subscription items, so
        fall back to the first item when the subscription lacks it.
        """
        start = get_field(subscription, "current_period_start")
        end = get_field(subscription, "current_period_end")
        if start is None:
            start = get_field(subscription, "items", "data", 0, "current_period_start")
        if end is None:
            end = get_field(subscription, "items", "data", 0, "current_period_end")
        return {"start": start, "end": end}

    @staticmethod
    def extract_invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
        """Subscription an invoice belongs to, if any"""
        subscription = get_field(invoice, "subscription")
        if subscription is None:
            subscription = get_field(invoice, "parent", "subscription_details", "subscription")
        # Expanded references arrive as objects
        if subscription is not None and not isinstance(subscription, str):
            subscription = get_field(subscription, "id")
        return subscription
