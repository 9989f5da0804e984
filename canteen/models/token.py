"""
餐券相关数据模型
"""

from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import Field

from .base import BaseEntity, MealType, TimestampMixin
from .member import MemberType


class TokenStatus(str, Enum):
    """餐券状态枚举"""
    PENDING = "PENDING"        # 待领取
    COLLECTED = "COLLECTED"    # 已领取
    CANCELLED = "CANCELLED"    # 已取消（跳餐）
    EXPIRED = "EXPIRED"        # 已过期

    @classmethod
    def parse(cls, value: Any) -> "TokenStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Invalid token status: {value}")


# 合法的状态转换；COLLECTED / CANCELLED / EXPIRED 均为终态
TOKEN_TRANSITIONS = {
    TokenStatus.PENDING: {TokenStatus.COLLECTED, TokenStatus.CANCELLED, TokenStatus.EXPIRED},
    TokenStatus.COLLECTED: set(),
    TokenStatus.CANCELLED: set(),
    TokenStatus.EXPIRED: set(),
}


def can_transition(current: TokenStatus, target: TokenStatus) -> bool:
    return target in TOKEN_TRANSITIONS.get(current, set())


class MealToken(BaseEntity, TimestampMixin):
    """餐券完整模型"""
    id: int = Field(..., description="餐券ID")
    organization_id: int = Field(..., description="组织ID")
    package_id: Optional[int] = Field(None, description="生成时依据的套餐ID")
    member_id: str = Field(..., description="会员ID")
    member_type: MemberType = Field(..., description="会员类型")
    meal_type: MealType = Field(..., description="餐次")
    token_date: date = Field(..., description="用餐日期")
    token_time: Optional[time] = Field(None, description="供餐时间")
    token_no: int = Field(..., ge=1, description="同日同餐流水号")
    status: TokenStatus = Field(..., description="餐券状态")
    collected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MealToken":
        data = dict(row)
        data["meal_type"] = MealType.parse(data["meal_type"])
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """API 输出格式（餐次与状态保持存储形式的大写）"""
        data = self.model_dump(mode="json")
        data["meal_type"] = self.meal_type.db_value
        return data
