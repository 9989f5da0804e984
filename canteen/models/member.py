"""
会员相关数据模型
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .base import BaseEntity, TimestampMixin


class MemberType(str, Enum):
    """会员类型枚举"""
    STUDENT = "student"
    FACULTY = "faculty"
    STAFF = "staff"


class MemberRef(BaseModel):
    """会员引用（ID + 类型标签）"""
    member_id: str = Field(..., min_length=1, description="会员ID")
    member_type: MemberType = Field(..., description="会员类型")

    model_config = {"frozen": True}


class Member(BaseEntity, TimestampMixin):
    """会员"""
    id: str
    member_type: MemberType
    organization_id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    status: str = "active"
