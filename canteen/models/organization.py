"""
组织及餐次时间配置模型
"""

from datetime import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .base import BaseEntity


class MealWindow(BaseModel):
    """餐次供应时间段"""
    start: time = Field(..., description="开始时间")
    end: time = Field(..., description="结束时间")

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.strftime("%H:%M"), "end": self.end.strftime("%H:%M")}


class Organization(BaseEntity):
    """组织"""
    id: int
    name: str
    settings: Dict[str, Any] = Field(default_factory=dict, description="餐次时间配置")
    meal_skip_deadline: Optional[int] = Field(None, ge=0, description="开餐前停止跳餐的分钟数")
    is_active: bool = True
