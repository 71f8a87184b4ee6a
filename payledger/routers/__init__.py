"""API routers for the payledger service."""
from fastapi import APIRouter

from . import health, orders, refunds, transactions, webhooks


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(webhooks.router)
    api_router.include_router(refunds.router)
    api_router.include_router(orders.router)
    api_router.include_router(transactions.router)
    return api_router
