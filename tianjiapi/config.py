from functools import lru_cache
from typing import List, Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="tianjiapi/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )
    # Application
    APP_NAME: str = "Tianji Coins API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: List[str] = ["*"]

    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USERNAME: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DATABASE: str = "tianji"

    # DATABASE_URL 이 있으면 POSTGRES_* 조합보다 우선
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_LOCK_TIMEOUT_MS: int = 5000
    DB_STATEMENT_TIMEOUT_MS: int = 10000

    @property
    def database_url(self) -> str:
        """Construct database URL from individual components"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        # URL encode the password to handle special characters
        encoded_password = quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+psycopg2://{self.POSTGRES_USERNAME}:{encoded_password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DATABASE}"

    # Security
    SECRET_KEY: str = ""
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # 서버 기준 시간대 - 체크인 "오늘" 판정에 사용
    TIMEZONE: str = "Asia/Shanghai"

    # Payment
    FRONTEND_URL: str = "http://localhost:5173"
    ENABLE_MOCK_PAYMENTS: bool = False

    def cashier_url(self, order_id: str) -> str:
        return f"{self.FRONTEND_URL.rstrip('/')}/payment/cashier?orderId={order_id}"

    # Business Rules
    REGISTRATION_BONUS_COINS: int = 20  # 가입 보너스
    UPGRADE_BONUS_LOOKBACK_DAYS: int = 30  # 등급 업그레이드 소급 지급 기간
    SUBSCRIPTION_MONTH_DAYS: int = 30
    SUBSCRIPTION_YEAR_DAYS: int = 365


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""

    return settings
