from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.core.dependencies import get_billing_service
from app.core.exceptions import to_response
from app.schemas.subscription import PaymentSheetRequest, CancelSubscriptionRequest
from app.services.billing_service import BillingService

router = APIRouter()


@router.post("/payment-sheet")
async def create_payment_sheet(
    sheet_request: PaymentSheetRequest,
    billing_service: BillingService = Depends(get_billing_service)
) -> JSONResponse:
    """Create a customer and incomplete subscription for the mobile payment sheet"""
    result = await billing_service.issue_payment_sheet(sheet_request.uid, sheet_request.priceId)
    return to_response(result)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    billing_service: BillingService = Depends(get_billing_service)
) -> JSONResponse:
    """Handle Stripe webhooks. The body is read raw so the signature can be checked."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    result = await billing_service.handle_webhook(payload, signature)
    return to_response(result)


@router.post("/cancel-subscription")
async def cancel_subscription(
    cancel_request: CancelSubscriptionRequest,
    billing_service: BillingService = Depends(get_billing_service)
) -> JSONResponse:
    """Cancel the user's subscription at the end of the current period"""
    result = await billing_service.cancel_subscription(cancel_request.uid)
    return to_response(result)
