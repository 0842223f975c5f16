"""
api/dashboard.py
Counts and recent activity for the dashboard.
"""
from fastapi import APIRouter, Depends

from app.api.deps import Services, get_services

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@router.get("")
async def dashboard(services: Services = Depends(get_services)):
    return await services.batch_service.dashboard()
