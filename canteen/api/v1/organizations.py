"""
组织配置路由模块
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.security import verify_access_key
from ...services.organization_service import OrganizationService
from ..deps import get_organization_service

router = APIRouter(dependencies=[Depends(verify_access_key)])


@router.get("/{org_id}/meal-times")
def get_meal_times(
    org_id: int,
    on_date: Optional[date] = Query(None, alias="date"),
    service: OrganizationService = Depends(get_organization_service),
):
    """组织餐次时间及跳餐截止时间"""
    org = service.get_organization(org_id)
    return {"organization": service.get_meal_times(org, on_date or date.today())}
