"""Version 1 API router."""
from fastapi import APIRouter

from src.api.v1.endpoints import assignments, billing, jobs, merchants, plans


api_router = APIRouter()
api_router.include_router(plans.router)
api_router.include_router(assignments.router)
api_router.include_router(billing.router)
api_router.include_router(merchants.router)
api_router.include_router(jobs.router)
