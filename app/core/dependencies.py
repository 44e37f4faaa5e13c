from fastapi import Request

from app.services.billing_service import BillingService


def get_billing_service(request: Request) -> BillingService:
    """Billing service built once by the application factory"""
    return request.app.state.billing_service
