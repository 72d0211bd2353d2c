"""
API v1 router.
"""
from fastapi import APIRouter

from plankalink.api.v1.endpoints import auth
from plankalink.integrations.router import router as planka_router

api_router = APIRouter()

api_router.include_router(auth.router)
api_router.include_router(planka_router)  # prefix already in router
