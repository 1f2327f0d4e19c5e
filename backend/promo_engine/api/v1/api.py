from fastapi import APIRouter
from promo_engine.api.v1.endpoints import discount_codes

api_router = APIRouter()
api_router.include_router(discount_codes.router, prefix="/discount-codes", tags=["discount-codes"])
