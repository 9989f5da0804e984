"""
餐券生命周期服务
根据套餐、餐次日历和选餐意向推导每人每餐每日的餐券，并管理其状态流转

主要功能：
- 按日生成餐券（幂等，重复调用不会产生重复餐券）
- 跳餐/取消、领餐、过期清理
- 餐券查询与统计

业务规则：
- 每个会员每天每个餐次最多一张餐券
- 流水号按 (日期, 餐次) 全局递增，从1开始，无空号无重号
- 不需要的餐次生成 CANCELLED 餐券而不是不生成，保证流水号和审计可见
- 状态只能从 PENDING 流转到 COLLECTED / CANCELLED / EXPIRED，三者均为终态
- 组织ID始终取自会员套餐
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from ..config.settings import settings
from ..core.app_logger import get_logger
from ..core.database import DatabaseManager, db_manager
from ..core.events import EventBus, TokenCreated, TokenStatusChanged
from ..core.exceptions import (
    BusinessRuleError,
    ConcurrencyError,
    ConflictRetryableError,
    DateOutOfValidityError,
    InvalidTransitionError,
    NoActivePackageError,
    NotFoundError,
    OrganizationNotFoundError,
    SkipDeadlinePassedError,
    TokenNotFoundError,
    ValidationError,
)
from ..models.base import MEAL_TYPES, MealType
from ..models.member import MemberRef
from ..models.organization import Organization
from ..models.package import MemberPackage
from ..models.selection import wants_meal
from ..models.token import MealToken, TokenStatus, can_transition
from .meal_calendar import is_meal_offered_on
from .organization_service import OrganizationService
from .package_service import PackageService
from .selection_service import SelectionService

logger = get_logger(__name__)

# 状态对应的时间戳字段
STATUS_TIMESTAMP_COLUMNS = {
    TokenStatus.COLLECTED: "collected_at",
    TokenStatus.CANCELLED: "cancelled_at",
    TokenStatus.EXPIRED: "expired_at",
}

MAX_ENSURE_DAYS = 31


def _parse_meal_type(value: Any) -> MealType:
    try:
        return MealType.parse(value)
    except ValueError as e:
        raise ValidationError(str(e))


class TokenService:
    """餐券服务类，封装所有餐券相关的业务逻辑"""

    def __init__(self, db: Optional[DatabaseManager] = None,
                 packages: Optional[PackageService] = None,
                 selections: Optional[SelectionService] = None,
                 organizations: Optional[OrganizationService] = None,
                 events: Optional[EventBus] = None,
                 conflict_retries: Optional[int] = None,
                 enforce_skip_deadline: Optional[bool] = None):
        self.db = db or db_manager
        self.events = events or EventBus(self.db)
        self.packages = packages or PackageService(self.db)
        self.selections = selections or SelectionService(self.db, self.events)
        self.organizations = organizations or OrganizationService(self.db)
        self.conflict_retries = (
            conflict_retries if conflict_retries is not None else settings.token_conflict_retries
        )
        self.enforce_skip_deadline = (
            enforce_skip_deadline if enforce_skip_deadline is not None else settings.enforce_skip_deadline
        )

    # ------------------------------------------------------------------
    # 生成
    # ------------------------------------------------------------------

    def ensure_tokens_for_date(self, member: MemberRef, on_date: date) -> List[MealToken]:
        """
        确保会员指定日期的餐券存在

        Args:
            member: 会员
            on_date: 用餐日期

        Returns:
            list: 本次新建的餐券；没有需要新建的餐券时返回空列表

        Raises:
            NoActivePackageError: 会员没有有效套餐时
            OrganizationNotFoundError: 套餐未关联组织或组织不存在时
            DateOutOfValidityError: 日期不在套餐有效期内时
            ConflictRetryableError: 流水号冲突重试耗尽时
        """
        package = self.packages.get_active_package(member)
        if package is None:
            raise NoActivePackageError(member.member_id, member.member_type.value)

        org = self._resolve_organization(package)
        self._check_validity(package, on_date)

        # 选餐记录在事务外读取，选餐表未配置时按全部需要处理
        selection = self.selections.get_selection(member, on_date)

        attempts = max(1, self.conflict_retries)
        for attempt in range(1, attempts + 1):
            try:
                created = self._create_missing_tokens(member, package, org, on_date, selection)
                break
            except ConcurrencyError as e:
                logger.warning(
                    "Token number conflict for %s/%s on %s (attempt %d/%d): %s",
                    member.member_type.value, member.member_id, on_date, attempt, attempts, e.message,
                )
        else:
            raise ConflictRetryableError(
                "Token generation conflicted with another request, please retry",
                details={"date": on_date.isoformat(), "attempts": attempts},
            )

        if created:
            logger.info(
                "Created %d token(s) for %s/%s on %s",
                len(created), member.member_type.value, member.member_id, on_date,
            )
        self.events.publish_all([
            TokenCreated(
                member_id=t.member_id,
                member_type=t.member_type.value,
                organization_id=t.organization_id,
                token_id=t.id,
                meal_type=t.meal_type.db_value,
                token_date=t.token_date,
                token_no=t.token_no,
                status=t.status.value,
            )
            for t in created
        ])
        return created

    def ensure_tokens_for_days(self, member: MemberRef, start_date: date, days: int = 7) -> List[Dict[str, Any]]:
        """
        连续多天生成餐券

        单日的业务错误（如超出有效期）记录在该日结果中，不中断其余日期。
        """
        if days < 1 or days > MAX_ENSURE_DAYS:
            raise ValidationError(f"days must be between 1 and {MAX_ENSURE_DAYS}")

        results = []
        for offset in range(days):
            on_date = start_date + timedelta(days=offset)
            try:
                created = self.ensure_tokens_for_date(member, on_date)
            except (BusinessRuleError, NotFoundError) as e:
                results.append({
                    "date": on_date.isoformat(),
                    "created": 0,
                    "error_code": e.error_code,
                    "message": e.message,
                })
                continue
            results.append({
                "date": on_date.isoformat(),
                "created": len(created),
                "tokens": [t.to_dict() for t in created],
            })
        return results

    def _resolve_organization(self, package: MemberPackage) -> Organization:
        """组织始终取自套餐本身"""
        if package.organization_id is None:
            raise OrganizationNotFoundError(
                "No organization is linked to this package. Please contact admin.",
                details={"package_id": package.id},
            )
        return self.organizations.get_organization(package.organization_id)

    def _check_validity(self, package: MemberPackage, on_date: date):
        if package.covers(on_date):
            return
        if package.valid_from and on_date < package.valid_from:
            raise DateOutOfValidityError(
                "Date is before package validity",
                details={"date": on_date.isoformat(), "valid_from": package.valid_from.isoformat()},
            )
        if package.valid_until and on_date > package.valid_until:
            raise DateOutOfValidityError(
                "Date is after package validity",
                details={"date": on_date.isoformat(), "valid_until": package.valid_until.isoformat()},
            )

    def _create_missing_tokens(self, member: MemberRef, package: MemberPackage,
                               org: Organization, on_date: date, selection) -> List[MealToken]:
        """在单个事务内按早、午、晚顺序补齐缺失的餐券"""
        created: List[MealToken] = []
        now = datetime.now()

        with self.db.transaction() as conn:
            for meal_type in MEAL_TYPES:
                if not is_meal_offered_on(package, meal_type, on_date):
                    continue

                if self._find_token(conn, member, meal_type, on_date) is not None:
                    continue

                status = TokenStatus.PENDING if wants_meal(selection, meal_type) else TokenStatus.CANCELLED
                token_no = self._next_token_no(conn, on_date, meal_type)
                window = self.organizations.get_meal_window(org, meal_type)

                token_id = conn.execute(
                    """
                    INSERT INTO meal_tokens (
                        organization_id, package_id, member_id, member_type, meal_type, token_date,
                        token_time, token_no, status, created_at, updated_at, cancelled_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    RETURNING id
                    """,
                    [
                        org.id, package.id, member.member_id, member.member_type.value, meal_type.db_value, on_date,
                        window.start, token_no, status.value, now, now,
                        now if status == TokenStatus.CANCELLED else None,
                    ],
                ).fetchone()[0]
                created.append(self._get_token(conn, token_id))

        return created

    def _next_token_no(self, conn, on_date: date, meal_type: MealType) -> int:
        """同日同餐的下一个流水号（所有会员共用）"""
        row = conn.execute(
            "SELECT COALESCE(MAX(token_no), 0) FROM meal_tokens WHERE token_date = ? AND meal_type = ?",
            [on_date, meal_type.db_value],
        ).fetchone()
        return row[0] + 1

    # ------------------------------------------------------------------
    # 状态流转
    # ------------------------------------------------------------------

    def skip_token(self, member: MemberRef, on_date: date, meal_type: Any,
                   now: Optional[datetime] = None) -> MealToken:
        """
        跳过某日某餐（PENDING -> CANCELLED）

        Raises:
            TokenNotFoundError: 餐券不存在时
            InvalidTransitionError: 餐券不是 PENDING 状态时
            SkipDeadlinePassedError: 启用截止时间校验且已过截止时间时
        """
        meal_type = _parse_meal_type(meal_type)
        now = now or datetime.now()

        with self.db.transaction() as conn:
            token = self._find_token(conn, member, meal_type, on_date)
            if token is None:
                raise TokenNotFoundError(
                    "No meal token found for this date and meal type",
                    details={"date": on_date.isoformat(), "meal_type": meal_type.value},
                )

            if token.status != TokenStatus.PENDING:
                raise InvalidTransitionError(
                    token.status.value,
                    TokenStatus.CANCELLED.value,
                    message=f"Cannot skip a meal that is already {token.status.value.lower()}",
                )

            if self.enforce_skip_deadline:
                org = self.organizations.get_organization(token.organization_id)
                deadline = self.organizations.get_skip_deadline(org, meal_type, on_date)
                if now >= deadline:
                    raise SkipDeadlinePassedError(
                        "The skip deadline for this meal has passed",
                        details={"deadline": deadline.isoformat()},
                    )

            updated = self._transition(conn, token, TokenStatus.CANCELLED, now)

        self._publish_status_change(token, updated)
        return updated

    # 跳餐与取消在存储中是同一个状态
    cancel_token = skip_token

    def collect_token(self, token_id: int, now: Optional[datetime] = None) -> MealToken:
        """
        领餐（PENDING -> COLLECTED），同一事务内扣减套餐额度

        Raises:
            TokenNotFoundError: 餐券不存在时
            InvalidTransitionError: 餐券不是 PENDING 状态时
            NoActivePackageError: 生成餐券的套餐已失效或不再覆盖餐券日期时
            QuotaExhaustedError / InsufficientBalanceError: 额度不足时
        """
        now = now or datetime.now()

        with self.db.transaction() as conn:
            token = self._get_token(conn, token_id)
            if token is None:
                raise TokenNotFoundError(f"Token not found: {token_id}")

            if not can_transition(token.status, TokenStatus.COLLECTED):
                raise InvalidTransitionError(
                    token.status.value,
                    TokenStatus.COLLECTED.value,
                    message=f"Cannot collect a meal that is already {token.status.value.lower()}",
                )

            package = self.packages.get_package_for_token(token, conn=conn)
            if package is None:
                raise NoActivePackageError(token.member_id, token.member_type.value)

            self.packages.record_collection(conn, package.id, token.meal_type)
            updated = self._transition(conn, token, TokenStatus.COLLECTED, now)

        logger.info("Token %s collected (%s #%s)", token_id, token.meal_type.db_value, token.token_no)
        self._publish_status_change(token, updated)
        return updated

    def expire_elapsed_tokens(self, now: Optional[datetime] = None) -> List[MealToken]:
        """过期清理：餐次结束时间已过仍未领取的 PENDING 餐券改为 EXPIRED"""
        now = now or datetime.now()
        expired: List[MealToken] = []
        pending: List[MealToken] = []
        org_cache: Dict[int, Organization] = {}

        with self.db.transaction() as conn:
            rows = self.db.fetch_all(
                "SELECT * FROM meal_tokens WHERE status = 'PENDING' AND token_date <= ? ORDER BY id",
                [now.date()],
                conn=conn,
            )
            for row in rows:
                token = MealToken.from_row(row)
                org = self._cached_organization(org_cache, token.organization_id)
                window = self.organizations.get_meal_window(org, token.meal_type)
                if datetime.combine(token.token_date, window.end) <= now:
                    pending.append(token)
                    expired.append(self._transition(conn, token, TokenStatus.EXPIRED, now))

        if expired:
            logger.info("Expired %d elapsed token(s)", len(expired))
        for before, after in zip(pending, expired):
            self._publish_status_change(before, after)
        return expired

    def _cached_organization(self, cache: Dict[int, Organization], org_id: int) -> Organization:
        if org_id not in cache:
            try:
                cache[org_id] = self.organizations.get_organization(org_id)
            except OrganizationNotFoundError:
                logger.warning("Organization %s missing, using default meal windows", org_id)
                cache[org_id] = Organization(id=org_id, name="")
        return cache[org_id]

    def _transition(self, conn, token: MealToken, target: TokenStatus, now: datetime) -> MealToken:
        """执行状态转换并记录对应时间戳"""
        if not can_transition(token.status, target):
            raise InvalidTransitionError(token.status.value, target.value)

        column = STATUS_TIMESTAMP_COLUMNS[target]
        conn.execute(
            f"UPDATE meal_tokens SET status = ?, updated_at = ?, {column} = ? WHERE id = ? AND status = ?",
            [target.value, now, now, token.id, token.status.value],
        )
        return self._get_token(conn, token.id)

    def _publish_status_change(self, before: MealToken, after: MealToken):
        self.events.publish(TokenStatusChanged(
            member_id=after.member_id,
            member_type=after.member_type.value,
            organization_id=after.organization_id,
            token_id=after.id,
            meal_type=after.meal_type.db_value,
            token_date=after.token_date,
            from_status=before.status.value,
            to_status=after.status.value,
        ))

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def _find_token(self, conn, member: MemberRef, meal_type: MealType, on_date: date) -> Optional[MealToken]:
        row = self.db.fetch_one(
            """
            SELECT * FROM meal_tokens
            WHERE member_id = ? AND member_type = ? AND meal_type = ? AND token_date = ?
            """,
            [member.member_id, member.member_type.value, meal_type.db_value, on_date],
            conn=conn,
        )
        return MealToken.from_row(row) if row else None

    def _get_token(self, conn, token_id: int) -> Optional[MealToken]:
        row = self.db.fetch_one("SELECT * FROM meal_tokens WHERE id = ?", [token_id], conn=conn)
        return MealToken.from_row(row) if row else None

    def get_token(self, token_id: int) -> MealToken:
        token = self._get_token(None, token_id)
        if token is None:
            raise TokenNotFoundError(f"Token not found: {token_id}")
        return token

    def list_tokens(
        self,
        member_id: str,
        member_type: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[str] = None,
        meal_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        查询会员餐券历史

        Returns:
            dict: tokens 按日期、时间倒序；stats 为按状态和按餐次的汇总
        """
        where_conditions = ["member_id = ?"]
        params: List[Any] = [member_id]

        if member_type:
            where_conditions.append("member_type = ?")
            params.append(member_type)
        if start_date:
            where_conditions.append("token_date >= ?")
            params.append(start_date)
        if end_date:
            where_conditions.append("token_date <= ?")
            params.append(end_date)
        if status:
            where_conditions.append("status = ?")
            try:
                params.append(TokenStatus.parse(status).value)
            except ValueError as e:
                raise ValidationError(str(e))
        if meal_type:
            where_conditions.append("meal_type = ?")
            params.append(_parse_meal_type(meal_type).db_value)

        rows = self.db.fetch_all(
            f"""
            SELECT * FROM meal_tokens
            WHERE {' AND '.join(where_conditions)}
            ORDER BY token_date DESC, token_time DESC, id DESC
            """,
            params,
        )
        tokens = [MealToken.from_row(row) for row in rows]
        return {"tokens": tokens, "stats": self.summarize(tokens)}

    @staticmethod
    def summarize(tokens: List[MealToken]) -> Dict[str, Any]:
        """按状态和餐次汇总餐券数量"""
        stats: Dict[str, Any] = {
            "total": len(tokens),
            "collected": 0,
            "pending": 0,
            "cancelled": 0,
            "expired": 0,
        }
        for meal_type in MEAL_TYPES:
            stats[meal_type.value] = {"collected": 0, "pending": 0, "total": 0}

        for token in tokens:
            status_key = token.status.value.lower()
            stats[status_key] += 1

            per_meal = stats[token.meal_type.value]
            per_meal["total"] += 1
            if token.status == TokenStatus.COLLECTED:
                per_meal["collected"] += 1
            elif token.status == TokenStatus.PENDING:
                per_meal["pending"] += 1

        return stats
