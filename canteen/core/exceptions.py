"""
自定义异常类
提供更精确的错误处理和异常信息
"""

from typing import Any, Dict, Optional


class BaseApplicationError(Exception):
    """应用基础异常类"""

    default_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BaseApplicationError):
    """数据验证异常"""
    default_code = "VALIDATION_ERROR"


class AuthorizationError(BaseApplicationError):
    """授权相关异常"""
    default_code = "PERMISSION_DENIED"


# ---- 存储层 ----

class DatabaseError(BaseApplicationError):
    """数据库相关异常"""
    default_code = "DATABASE_ERROR"


class MissingTableError(DatabaseError):
    """表不存在（功能未配置）"""
    default_code = "TABLE_MISSING"


class StoreUnavailableError(DatabaseError):
    """存储暂不可用，调用方可重试"""
    default_code = "STORE_UNAVAILABLE"


class ConcurrencyError(DatabaseError):
    """并发写入冲突（唯一约束或事务冲突）"""
    default_code = "CONCURRENCY_CONFLICT"


class ConflictRetryableError(BaseApplicationError):
    """内部重试耗尽后的瞬时冲突"""
    default_code = "CONFLICT_RETRYABLE"


# ---- 资源不存在 ----

class NotFoundError(BaseApplicationError):
    """资源不存在"""
    default_code = "RESOURCE_NOT_FOUND"


class MemberNotFoundError(NotFoundError):
    default_code = "MEMBER_NOT_FOUND"


class OrganizationNotFoundError(NotFoundError):
    default_code = "ORGANIZATION_NOT_FOUND"


class TokenNotFoundError(NotFoundError):
    default_code = "TOKEN_NOT_FOUND"


class SelectionNotFoundError(NotFoundError):
    default_code = "SELECTION_NOT_FOUND"


# ---- 业务规则 ----

class BusinessRuleError(BaseApplicationError):
    """业务规则错误"""
    default_code = "BUSINESS_RULE_VIOLATION"


class NoActivePackageError(BusinessRuleError):
    """会员没有有效套餐（需联系管理员）"""
    default_code = "NO_ACTIVE_PACKAGE"

    def __init__(self, member_id: str, member_type: str):
        super().__init__(
            "No active package found for this member",
            details={"member_id": member_id, "member_type": member_type},
        )


class DateOutOfValidityError(BusinessRuleError):
    """日期不在套餐有效期内"""
    default_code = "DATE_OUT_OF_VALIDITY"


class InvalidTransitionError(BusinessRuleError):
    """餐券状态转换不合法"""
    default_code = "INVALID_TRANSITION"

    def __init__(self, current_status: str, requested_status: str, message: Optional[str] = None):
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            message or f"Cannot change token from {current_status.lower()} to {requested_status.lower()}",
            details={"current_status": current_status, "requested_status": requested_status},
        )


class SkipDeadlinePassedError(BusinessRuleError):
    """已过跳餐截止时间"""
    default_code = "SKIP_DEADLINE_PASSED"


class QuotaExhaustedError(BusinessRuleError):
    """次卡餐次已用完"""
    default_code = "QUOTA_EXHAUSTED"


class InsufficientBalanceError(BusinessRuleError):
    """余额不足"""
    default_code = "INSUFFICIENT_BALANCE"


class SelectionsNotConfiguredError(BusinessRuleError):
    """选餐功能未配置"""
    default_code = "SELECTIONS_NOT_CONFIGURED"
