"""
餐券相关的请求模式
"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.base import MealType
from .common import MemberRequest


class EnsureTokensRequest(MemberRequest):
    """生成某日餐券请求"""
    on_date: Optional[date] = Field(None, alias="date", description="用餐日期，默认今天")


class EnsureRangeRequest(MemberRequest):
    """连续多天生成餐券请求"""
    days: int = Field(7, ge=1, le=31, description="天数")
    start_date: Optional[date] = Field(None, alias="startDate", description="开始日期，默认今天")


class SkipTokenRequest(MemberRequest):
    """跳餐/取消请求"""
    on_date: date = Field(..., alias="date", description="用餐日期")
    meal_type: MealType = Field(..., alias="mealType", description="餐次")
    action: str = Field(..., description="skip 或 cancel")

    @field_validator("meal_type", mode="before")
    @classmethod
    def parse_meal_type(cls, v: Any) -> MealType:
        return MealType.parse(v)


class ExpireRequest(BaseModel):
    """过期清理请求"""
    now: Optional[datetime] = Field(None, description="清理基准时间，默认当前时间")

    model_config = ConfigDict(populate_by_name=True)
