from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

from ..models.member import MemberRef, MemberType


class ErrorResponse(BaseModel):
    """错误响应格式"""
    success: bool = Field(False, description="请求失败")
    error_code: str = Field(description="错误码")
    message: str = Field(description="错误消息")
    details: Dict[str, Any] = Field(default_factory=dict, description="错误详情")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "error_code": "NO_ACTIVE_PACKAGE",
                "message": "No active package found for this member",
                "details": {"member_id": "S1001", "member_type": "student"},
            }
        }
    )


class MemberRequest(BaseModel):
    """携带会员标识的请求基类，接受 camelCase 字段名"""
    member_id: str = Field(..., min_length=1, alias="memberId", description="会员ID")
    member_type: MemberType = Field(..., alias="memberType", description="会员类型")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def member(self) -> MemberRef:
        return MemberRef(member_id=self.member_id, member_type=self.member_type)
