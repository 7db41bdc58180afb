"""
Main API router that includes all route modules.
"""
from fastapi import APIRouter, Depends
from app.api.routes import auth, transactions, categories, analytics, admin
from app.core.rate_limit import general_limiter

# The general limiter runs ahead of each route's own limiter
api_router = APIRouter(dependencies=[Depends(general_limiter)])

# Include all route modules
api_router.include_router(auth.router)
api_router.include_router(transactions.router)
api_router.include_router(categories.router)
api_router.include_router(analytics.router)
api_router.include_router(admin.router)
