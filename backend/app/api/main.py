"""
Route aggregation; mounted under ``settings.API_V1_STR`` by ``app.main``.

- cart: cart contents and discount preview
- orders: checkout, order history, payment URL retry
- discounts: discount code administration
- webhooks: payment processor callbacks
- utils: health check
"""
from fastapi import APIRouter

from app.api.routes import cart, discounts, orders, utils, webhooks

api_router = APIRouter()
api_router.include_router(cart.router)
api_router.include_router(orders.router)
api_router.include_router(discounts.router)
api_router.include_router(webhooks.router)
api_router.include_router(utils.router)
