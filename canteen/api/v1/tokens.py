"""
餐券路由模块
生成、跳餐/取消、领餐、过期清理和历史查询
"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.exceptions import ValidationError
from ...core.security import verify_access_key
from ...models.member import MemberType
from ...schemas.token import EnsureRangeRequest, EnsureTokensRequest, ExpireRequest, SkipTokenRequest
from ...services.package_service import PackageService
from ...services.token_service import TokenService
from ..deps import get_package_service, get_token_service

router = APIRouter(dependencies=[Depends(verify_access_key)])

SKIP_ACTIONS = {
    "skip": "Meal skipped successfully",
    "cancel": "Meal cancelled successfully",
}


@router.post("/ensure")
def ensure_tokens(
    request: EnsureTokensRequest,
    service: TokenService = Depends(get_token_service),
):
    """确保会员某日的餐券存在（幂等）"""
    created = service.ensure_tokens_for_date(request.member, request.on_date or date.today())
    return {"created": [t.to_dict() for t in created]}


@router.post("/ensure-range")
def ensure_tokens_range(
    request: EnsureRangeRequest,
    service: TokenService = Depends(get_token_service),
):
    """连续多天生成餐券"""
    results = service.ensure_tokens_for_days(
        request.member, request.start_date or date.today(), request.days
    )
    return {"results": results}


@router.post("/skip")
def skip_token(
    request: SkipTokenRequest,
    service: TokenService = Depends(get_token_service),
):
    """跳餐或取消某日某餐"""
    action = request.action.strip().lower()
    if action not in SKIP_ACTIONS:
        raise ValidationError("Invalid action. Must be 'skip' or 'cancel'", details={"action": request.action})

    if action == "skip":
        token = service.skip_token(request.member, request.on_date, request.meal_type)
    else:
        token = service.cancel_token(request.member, request.on_date, request.meal_type)
    return {"token": token.to_dict(), "message": SKIP_ACTIONS[action]}


@router.post("/expire")
def expire_tokens(
    request: Optional[ExpireRequest] = None,
    service: TokenService = Depends(get_token_service),
    packages: PackageService = Depends(get_package_service),
):
    """过期清理，供外部定时任务调用"""
    now = request.now if request and request.now else datetime.now()
    expired = service.expire_elapsed_tokens(now)
    expired_packages = packages.expire_lapsed_packages(now.date())
    return {"expired": len(expired), "expired_packages": expired_packages}


@router.post("/{token_id}/collect")
def collect_token(
    token_id: int,
    service: TokenService = Depends(get_token_service),
):
    """领餐"""
    token = service.collect_token(token_id)
    return {"token": token.to_dict()}


@router.get("")
def list_tokens(
    member_id: str = Query(..., alias="memberId", min_length=1),
    member_type: Optional[MemberType] = Query(None, alias="memberType"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    status: Optional[str] = Query(None),
    meal_type: Optional[str] = Query(None, alias="mealType"),
    service: TokenService = Depends(get_token_service),
):
    """会员餐券历史与统计"""
    result = service.list_tokens(
        member_id,
        member_type=member_type.value if member_type else None,
        start_date=start_date,
        end_date=end_date,
        status=status,
        meal_type=meal_type,
    )
    return {"tokens": [t.to_dict() for t in result["tokens"]], "stats": result["stats"]}


@router.get("/{token_id}")
def get_token(
    token_id: int,
    service: TokenService = Depends(get_token_service),
):
    return {"token": service.get_token(token_id).to_dict()}
