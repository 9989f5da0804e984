from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    # 数据库配置
    database_url: str = "duckdb://./data/canteen.duckdb"
    # 只限制等待存储锁的时间；拿到锁之后的语句执行不受此限制
    store_timeout_seconds: float = 5.0

    # API配置
    api_title: str = "Canteen Token API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"
    host: str = "127.0.0.1"
    port: int = 8000

    # 访问口令，逗号分隔；为空时不校验
    access_keys: str = ""

    # 餐券引擎
    token_conflict_retries: int = 3
    default_meal_skip_deadline: int = 30  # 分钟
    enforce_skip_deadline: bool = False

    # 开发模式
    debug: bool = False
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CANTEEN_",
        env_file=".env",
        case_sensitive=False,
    )

    @property
    def access_key_list(self) -> List[str]:
        """解析后的访问口令列表"""
        return [k.strip() for k in self.access_keys.split(",") if k.strip()]


# 全局设置实例
settings = Settings()
