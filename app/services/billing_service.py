import json
import logging
from typing import Optional, Dict, Any, Callable

import stripe

from app.core.exceptions import ServiceResult, ErrorKind
from app.schemas.subscription import (
    SubscriptionStatus,
    PaymentSheetResponse,
    CancelSubscriptionResponse,
    CancellationData,
    WebhookAck,
)
from app.services.stripe_service import StripeService
from app.services.supabase_service import SupabaseService
from app.utils.utils import get_field, timestamp_to_iso, utc_now_iso

logger = logging.getLogger(__name__)

CANCELLATION_MESSAGE = "Subscription will be cancelled at the end of the current billing period"

RESUBSCRIBE_RESETS = {
    "cancelAtPeriodEnd": False,
    "cancelledAt": None,
    "createdAt": None,
    "currentPeriodStart": None,
    "lastFailedPaymentDate": None,
}


def _customer_fields(customer_id: Optional[str]) -> Dict[str, Any]:
    # stripeCustomerId is canonical; customerId is kept as an alias
    return {"stripeCustomerId": customer_id, "customerId": customer_id}


def subscription_created_fields(event: Dict[str, Any], subscription: Dict[str, Any]) -> Dict[str, Any]:
    period = StripeService.extract_period(subscription)
    return {
        "status": subscription.get("status"),
        "planId": StripeService.extract_plan_id(subscription),
        "subscriptionId": subscription.get("id"),
        **_customer_fields(subscription.get("customer")),
        "createdAt": timestamp_to_iso(subscription.get("created")),
        "currentPeriodStart": timestamp_to_iso(period["start"]),
        "currentPeriodEnd": timestamp_to_iso(period["end"]),
        "cancelAtPeriodEnd": bool(subscription.get("cancel_at_period_end", False)),
    }


def subscription_updated_fields(event: Dict[str, Any], subscription: Dict[str, Any]) -> Dict[str, Any]:
    period = StripeService.extract_period(subscription)
    return {
        "status": subscription.get("status"),
        "planId": StripeService.extract_plan_id(subscription),
        **_customer_fields(subscription.get("customer")),
        "currentPeriodStart": timestamp_to_iso(period["start"]),
        "currentPeriodEnd": timestamp_to_iso(period["end"]),
        "cancelAtPeriodEnd": bool(subscription.get("cancel_at_period_end", False)),
    }


def subscription_deleted_fields(event: Dict[str, Any], subscription: Dict[str, Any]) -> Dict[str, Any]:
    period = StripeService.extract_period(subscription)
    return {
        "status": SubscriptionStatus.CANCELED.value,
        **_customer_fields(subscription.get("customer")),
        "currentPeriodEnd": timestamp_to_iso(period["end"]),
        "cancelAtPeriodEnd": bool(subscription.get("cancel_at_period_end", False)),
    }


def payment_succeeded_fields(event: Dict[str, Any], invoice: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if not StripeService.extract_invoice_subscription_id(invoice):
        return None
    # Taken from the event rather than the clock so redelivery writes the same values
    paid_at = get_field(invoice, "status_transitions", "paid_at") or event.get("created")
    return {
        "status": SubscriptionStatus.ACTIVE.value,
        **_customer_fields(invoice.get("customer")),
        "lastPaymentDate": timestamp_to_iso(paid_at),
        "lastPaymentAmount": invoice.get("amount_paid"),
        "invoicePdf": invoice.get("invoice_pdf"),
    }


def payment_failed_fields(event: Dict[str, Any], invoice: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if not StripeService.extract_invoice_subscription_id(invoice):
        return None
    return {
        "status": SubscriptionStatus.PAST_DUE.value,
        **_customer_fields(invoice.get("customer")),
        "lastFailedPaymentDate": timestamp_to_iso(event.get("created")),
    }


# Event type -> builder of the merge applied to the subscription document.
# A builder returning None means the event carries nothing to record.
EVENT_MUTATIONS: Dict[str, Callable[[Dict[str, Any], Dict[str, Any]], Optional[Dict[str, Any]]]] = {
    "customer.subscription.created": subscription_created_fields,
    "customer.subscription.updated": subscription_updated_fields,
    "customer.subscription.deleted": subscription_deleted_fields,
    "invoice.payment_succeeded": payment_succeeded_fields,
    "invoice.payment_failed": payment_failed_fields,
}


class BillingService:
    """Keeps subscription documents in step with Stripe"""

    def __init__(self, stripe_service: StripeService, store: SupabaseService):
        self.stripe_service = stripe_service
        self.store = store

    async def issue_payment_sheet(self, uid: Optional[str], price_id: Optional[str]) -> ServiceResult:
        """
        Provision a customer, ephemeral key and incomplete subscription, and
        record a pending subscription document for the uid.
        Nothing created in Stripe is rolled back when a later step fails.
        """
        if not uid:
            return ServiceResult.fail(ErrorKind.VALIDATION, "uid is required")
        if not price_id:
            return ServiceResult.fail(ErrorKind.VALIDATION, "priceId is required")

        try:
            customer = await self.stripe_service.create_customer(uid)
            ephemeral_key = await self.stripe_service.create_ephemeral_key(customer.id)
            subscription = await self.stripe_service.create_subscription(customer.id, price_id)
            client_secret = subscription.latest_invoice.payment_intent.client_secret

            fields = {
                "status": SubscriptionStatus.PENDING.value,
                "subscriptionId": subscription.id,
                **_customer_fields(customer.id),
                "planId": price_id,
                "currentPeriodEnd": None,
            }
            if await self.store.subscription_exists(uid):
                # A new subscription must not inherit the previous one's lifecycle fields
                logger.info(f"[stripe.payment-sheet] Replacing subscription record for uid={uid}")
                fields.update(RESUBSCRIBE_RESETS)

            await self.store.upsert_subscription(uid, fields)
        except Exception as e:
            logger.error(f"[stripe.payment-sheet] ❌ Failed for uid={uid}: {e}")
            return ServiceResult.fail(ErrorKind.UPSTREAM, str(e))

        logger.info(f"[stripe.payment-sheet] ✅ Subscription {subscription.id} pending for uid={uid}")
        return ServiceResult.ok(PaymentSheetResponse(
            paymentIntent=client_secret,
            ephemeralKey=ephemeral_key.secret,
            customer=customer.id,
            subscriptionId=subscription.id
        ).model_dump())

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> ServiceResult:
        """Verify a Stripe event and merge its effect into the uid's document"""
        if not signature:
            logger.warning("[stripe.webhook] ❌ Missing stripe-signature header")
            return ServiceResult.fail(ErrorKind.SIGNATURE, "Missing stripe-signature header")
        if not self.stripe_service.webhook_secret:
            logger.error("[stripe.webhook] ❌ STRIPE_WEBHOOK_SECRET is not configured")
            return ServiceResult.fail(ErrorKind.CONFIGURATION, "Webhook secret not configured")

        try:
            self.stripe_service.construct_event(payload, signature)
        except (ValueError, stripe.error.SignatureVerificationError) as e:
            logger.warning(f"[stripe.webhook] ❌ Signature verification failed: {e}")
            return ServiceResult.fail(ErrorKind.SIGNATURE, f"Webhook Error: {e}")

        ack = ServiceResult.ok(WebhookAck().model_dump())
        event_type = event_id = None
        try:
            event = json.loads(payload)
            event_type = event.get("type")
            event_id = event.get("id")

            # Dispatch before resolving the uid: events with nothing to record are acked without a Stripe call
            build_fields = EVENT_MUTATIONS.get(event_type)
            if build_fields is None:
                logger.info(f"[stripe.webhook] Unhandled event type {event_type} id={event_id}")
                return ack

            obj = get_field(event, "data", "object", default={})
            fields = build_fields(event, obj)
            if fields is None:
                logger.info(f"[stripe.webhook] {event_type} id={event_id} has no subscription, skipping")
                return ack

            customer_id = obj.get("customer")
            uid = await self.stripe_service.get_uid_for_customer(customer_id) if customer_id else None
            if not uid:
                logger.warning(f"[stripe.webhook] ❌ No uid in metadata for customer={customer_id} event={event_id}")
                return ServiceResult.fail(ErrorKind.IDENTITY, "UID not found in metadata")

            await self.store.upsert_subscription(uid, fields)
        except Exception as e:
            logger.error(f"[stripe.webhook] ❌ Failed to apply {event_type} id={event_id}: {e}")
            return ServiceResult.fail(ErrorKind.UPSTREAM, str(e))

        logger.info(f"[stripe.webhook] ✅ Applied {event_type} id={event_id} to uid={uid}")
        return ack

    async def cancel_subscription(self, uid: Optional[str]) -> ServiceResult:
        """Schedule cancellation at period end for the uid's subscription"""
        if not uid:
            return ServiceResult.fail(ErrorKind.VALIDATION, "uid is required")

        try:
            record = await self.store.get_subscription(uid)
            if record is None:
                logger.warning(f"[stripe.cancel] ❌ No subscription record for uid={uid}")
                return ServiceResult.fail(ErrorKind.NOT_FOUND, "Subscription not found")

            subscription_id = record.get("subscriptionId")
            if not subscription_id:
                logger.warning(f"[stripe.cancel] ❌ Record for uid={uid} has no subscriptionId")
                return ServiceResult.fail(ErrorKind.VALIDATION, "No subscriptionId found for this user")

            subscription = await self.stripe_service.cancel_at_period_end(subscription_id)
            current_period_end = timestamp_to_iso(StripeService.extract_period(subscription)["end"])

            # A failure here leaves Stripe cancelling; the following
            # customer.subscription.updated event still records cancelAtPeriodEnd
            await self.store.upsert_subscription(uid, {
                "status": SubscriptionStatus.CANCELLING.value,
                "cancelAtPeriodEnd": True,
                "cancelledAt": utc_now_iso(),
                "currentPeriodEnd": current_period_end,
            })
        except Exception as e:
            logger.error(f"[stripe.cancel] ❌ Failed for uid={uid}: {e}")
            return ServiceResult.fail(ErrorKind.UPSTREAM, str(e))

        logger.info(f"[stripe.cancel] ✅ Subscription {subscription_id} cancelling for uid={uid}")
        return ServiceResult.ok(CancelSubscriptionResponse(
            success=True,
            message=CANCELLATION_MESSAGE,
            data=CancellationData(currentPeriodEnd=current_period_end)
        ).model_dump(mode="json"))
