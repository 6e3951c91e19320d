from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")
    sql_echo: bool = Field(False, alias="SQL_ECHO")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_days: int = Field(7, alias="REFRESH_TOKEN_EXPIRE_DAYS")

    login_code_length: int = Field(8, alias="LOGIN_CODE_LENGTH")
    login_code_expire_hours: int = Field(72, alias="LOGIN_CODE_EXPIRE_HOURS")

    transition_stale_minutes: int = Field(30, alias="TRANSITION_STALE_MINUTES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    admin_phone_number: Optional[str] = Field(None, alias="ADMIN_PHONE_NUMBER")
    admin_name: Optional[str] = Field(None, alias="ADMIN_NAME")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
