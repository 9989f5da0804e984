"""
API routes and endpoints.
"""

from fastapi import APIRouter

from ..schemas.common import ErrorResponse
from .v1 import organizations, packages, selections, tokens

# 业务错误统一使用 ErrorResponse 格式
ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in (400, 403, 404, 409, 422, 503)
}

api_router = APIRouter(responses=ERROR_RESPONSES)

# 包含所有v1路由
api_router.include_router(tokens.router, prefix="/tokens", tags=["餐券"])
api_router.include_router(packages.router, prefix="", tags=["套餐"])  # 无前缀以支持 /package 路径
api_router.include_router(selections.router, prefix="/selections", tags=["选餐"])
api_router.include_router(organizations.router, prefix="/organizations", tags=["组织"])
