"""
选餐意向路由模块
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.security import verify_access_key
from ...models.member import MemberRef, MemberType
from ...schemas.selection import SelectionUpsertRequest
from ...services.selection_service import SelectionService
from ..deps import get_selection_service

router = APIRouter(dependencies=[Depends(verify_access_key)])


@router.get("")
def list_selections(
    member_id: str = Query(..., alias="memberId", min_length=1),
    member_type: MemberType = Query(..., alias="memberType"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    service: SelectionService = Depends(get_selection_service),
):
    """查询选餐意向"""
    selections = service.list_selections(
        MemberRef(member_id=member_id, member_type=member_type), start_date, end_date
    )
    return {"selections": [s.model_dump(mode="json") for s in selections]}


@router.post("")
def upsert_selections(
    request: SelectionUpsertRequest,
    service: SelectionService = Depends(get_selection_service),
):
    """批量写入选餐意向"""
    selections = service.upsert_selections(request.member, request.selections)
    return {"success": True, "selections": [s.model_dump(mode="json") for s in selections]}


@router.delete("")
def delete_selection(
    selection_id: int = Query(..., alias="id"),
    service: SelectionService = Depends(get_selection_service),
):
    """删除选餐记录"""
    service.delete_selection(selection_id)
    return {"success": True}
