"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import offers, products, jobs

api_router = APIRouter()

api_router.include_router(
    offers.router,
    prefix="/offers",
    tags=["offers"]
)

api_router.include_router(
    products.router,
    prefix="/products",
    tags=["products"]
)

api_router.include_router(
    jobs.router,
    prefix="/jobs",
    tags=["jobs"]
)
