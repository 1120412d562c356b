from fastapi import APIRouter
from app.api.v1.endpoints import billing

api_router = APIRouter()

api_router.include_router(billing.router, prefix="/payments", tags=["payments"])
