"""
选餐意向模型
每个会员每天一行，三个布尔列分别表示早/午/晚是否需要
"""

from datetime import date
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import BaseEntity, MealType, TimestampMixin
from .member import MemberType


class MealSelectionUpsert(BaseModel):
    """选餐意向写入模型"""
    on_date: date = Field(..., alias="date", description="日期")
    breakfast: Optional[bool] = Field(None, description="是否需要早餐")
    lunch: Optional[bool] = Field(None, description="是否需要午餐")
    dinner: Optional[bool] = Field(None, description="是否需要晚餐")

    model_config = ConfigDict(populate_by_name=True)


class MealSelection(BaseEntity, TimestampMixin):
    """会员某日的选餐意向"""
    id: int
    member_id: str
    member_type: MemberType
    organization_id: Optional[int] = None
    date: date
    breakfast_needed: Optional[bool] = None
    lunch_needed: Optional[bool] = None
    dinner_needed: Optional[bool] = None

    def wants(self, meal_type: Any) -> bool:
        """只有显式为 False 才表示不需要"""
        flag = getattr(self, f"{MealType.parse(meal_type).value}_needed")
        return flag is not False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MealSelection":
        return cls(**row)


def wants_meal(selection: Optional[MealSelection], meal_type: Any) -> bool:
    """没有选餐记录时默认全部需要"""
    if selection is None:
        return True
    return selection.wants(meal_type)
