"""
访问口令校验
API 通过 X-Access-Key 请求头携带共享口令；未配置口令时直接放行
"""

from typing import Optional

from fastapi import Header

from .exceptions import AuthorizationError
from ..config.settings import settings


class SecurityManager:
    """安全管理器"""

    def __init__(self, access_keys=None):
        self._access_keys = access_keys

    @property
    def valid_keys(self) -> set:
        keys = self._access_keys if self._access_keys is not None else settings.access_key_list
        return {str(k).strip() for k in keys if str(k).strip()}

    def verify_access_key(self, access_key: Optional[str] = None) -> str:
        """验证访问口令"""
        valid_keys = self.valid_keys

        # 允许在未配置口令时直接通过
        if valid_keys:
            if not access_key or str(access_key).strip() not in valid_keys:
                raise AuthorizationError("Invalid or missing access key")

        return access_key or ""


# 全局安全管理器实例
security_manager = SecurityManager()


async def verify_access_key(x_access_key: Optional[str] = Header(default=None)) -> str:
    """验证访问口令的依赖函数"""
    return security_manager.verify_access_key(x_access_key)
