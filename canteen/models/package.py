"""
会员套餐相关数据模型

套餐有两种互斥形态：
- count_based: 每个餐次有总次数和已用次数
- balance_based: 按余额扣费，每个餐次有单价
"""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .base import (
    MEAL_TYPES,
    BaseEntity,
    MealType,
    TimestampMixin,
    parse_bool,
    parse_json_list,
)
from .member import MemberType


class PackageType(str, Enum):
    """套餐类型枚举"""
    COUNT_BASED = "count_based"
    BALANCE_BASED = "balance_based"


class PackageStatus(str, Enum):
    """套餐状态枚举"""
    ACTIVE = "active"
    DEACTIVATED = "deactivated"
    EXPIRED = "expired"


class MealPlan(BaseModel):
    """单个餐次的套餐配置"""
    enabled: bool = False
    days: List[str] = Field(default_factory=list, description="允许的星期，空表示每天")
    total: int = Field(0, ge=0, description="总次数（次卡）")
    consumed: int = Field(0, ge=0, description="已用次数")
    price_cents: int = Field(0, ge=0, description="单价（分，余额套餐）")

    @property
    def remaining(self) -> int:
        """剩余次数，不会为负"""
        return max(0, self.total - self.consumed)


class MemberPackage(BaseEntity, TimestampMixin):
    """会员套餐完整模型"""
    id: int
    member_id: str
    member_type: MemberType
    organization_id: Optional[int] = None
    package_type: PackageType = PackageType.COUNT_BASED
    breakfast: MealPlan = Field(default_factory=MealPlan)
    lunch: MealPlan = Field(default_factory=MealPlan)
    dinner: MealPlan = Field(default_factory=MealPlan)
    balance_cents: Optional[int] = None
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    is_active: bool = True
    status: PackageStatus = PackageStatus.ACTIVE

    def meal(self, meal_type: Any) -> MealPlan:
        return getattr(self, MealType.parse(meal_type).value)

    @property
    def is_balance_based(self) -> bool:
        return self.package_type == PackageType.BALANCE_BASED

    @property
    def is_unlimited(self) -> bool:
        """无截止日期"""
        return self.valid_until is None

    def days_remaining(self, today: date) -> Optional[int]:
        if self.valid_until is None:
            return None
        return max(0, (self.valid_until - today).days)

    def is_expired(self, today: date) -> bool:
        if self.status == PackageStatus.EXPIRED:
            return True
        return self.valid_until is not None and self.valid_until < today

    def covers(self, on_date: date) -> bool:
        """日期是否在有效期内（未设置的边界视为不限）"""
        if self.valid_from is not None and on_date < self.valid_from:
            return False
        if self.valid_until is not None and on_date > self.valid_until:
            return False
        return True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MemberPackage":
        """从 member_packages 表记录构建"""
        plans = {}
        for meal_type in MEAL_TYPES:
            key = meal_type.value
            plans[key] = MealPlan(
                enabled=parse_bool(row.get(f"{key}_enabled")),
                days=parse_json_list(row.get(f"{key}_days")),
                total=row.get(f"{key}_meals_total") or 0,
                consumed=row.get(f"{key}_meals_consumed") or 0,
                price_cents=row.get(f"{key}_price_cents") or 0,
            )
        return cls(
            id=row["id"],
            member_id=row["member_id"],
            member_type=row["member_type"],
            organization_id=row.get("organization_id"),
            package_type=row.get("package_type") or PackageType.COUNT_BASED,
            balance_cents=row.get("balance_cents"),
            valid_from=row.get("valid_from"),
            valid_until=row.get("valid_until"),
            is_active=parse_bool(row.get("is_active")),
            status=row.get("status") or PackageStatus.ACTIVE,
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            **plans,
        )
