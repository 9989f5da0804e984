"""
基础数据模型
定义通用的模型基类和常用字段
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel


class TimestampMixin(BaseModel):
    """时间戳混入类"""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BaseEntity(BaseModel):
    """基础实体模型"""

    model_config = {"from_attributes": True}


class MealType(str, Enum):
    """餐次类型枚举（固定顺序：早、午、晚）"""
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"

    @classmethod
    def parse(cls, value: Any) -> "MealType":
        """大小写不敏感地解析餐次类型"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid meal type: {value}")

    @property
    def db_value(self) -> str:
        """餐券表中的存储形式（大写）"""
        return self.value.upper()


MEAL_TYPES: List[MealType] = [MealType.BREAKFAST, MealType.LUNCH, MealType.DINNER]


def parse_bool(value: Any) -> bool:
    """兼容字符串形式的布尔值"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def parse_json_list(value: Any) -> List[str]:
    """解析 JSON 数组字段，解析失败时返回空列表"""
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    try:
        data = json.loads(value)
    except (TypeError, ValueError):
        return []
    return [str(v) for v in data] if isinstance(data, list) else []
