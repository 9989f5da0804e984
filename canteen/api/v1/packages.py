"""
会员套餐路由模块
"""

from datetime import date

from fastapi import APIRouter, Depends, Query

from ...core.security import verify_access_key
from ...models.member import MemberRef, MemberType
from ...services.package_service import PackageService
from ..deps import get_package_service

router = APIRouter(dependencies=[Depends(verify_access_key)])


@router.get("/package")
def get_member_package(
    member_id: str = Query(..., alias="memberId", min_length=1),
    member_type: MemberType = Query(..., alias="memberType"),
    service: PackageService = Depends(get_package_service),
):
    """会员当前有效套餐；没有有效套餐时 package 为 null"""
    view = service.get_package_view(MemberRef(member_id=member_id, member_type=member_type), date.today())
    return {"package": view}
