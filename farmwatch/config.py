import os
from enum import StrEnum
from typing import Final

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError


class LogLevel(StrEnum):
    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"


class Settings(BaseModel):
    users_table: str = Field(validation_alias="USERS_TABLE")
    auth_secret_name: str = Field(default="", validation_alias="AUTH_SECRET_NAME")
    aws_region: str | None = Field(default=None, validation_alias="AWS_REGION")

    # Sensor feed HTTP settings
    feed_timeout_secs: int = Field(default=15, validation_alias="FEED_TIMEOUT_SECS")
    feed_cache_ttl_secs: int = Field(default=300, validation_alias="FEED_CACHE_TTL_SECS")
    user_agent: str = Field(default="farmwatch-dashboard/1.0", validation_alias="USER_AGENT")

    log_level: LogLevel = Field(default=LogLevel.INFO, validation_alias="LOG_LEVEL")


ENV_KEYS: Final[tuple[str, ...]] = (
    "USERS_TABLE",
    "AUTH_SECRET_NAME",
    "AWS_REGION",
    "FEED_TIMEOUT_SECS",
    "FEED_CACHE_TTL_SECS",
    "USER_AGENT",
    "LOG_LEVEL",
)


def load_settings() -> Settings:
    # Load .env if present (does nothing if file missing)
    load_dotenv()
    data: dict[str, str] = {}
    for key in ENV_KEYS:
        if key in os.environ:
            data[key] = os.environ[key]
    # Fall back to the SDK default region variable
    if "AWS_REGION" not in data and "AWS_DEFAULT_REGION" in os.environ:
        data["AWS_REGION"] = os.environ["AWS_DEFAULT_REGION"]

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        missing = [k for k in ("USERS_TABLE",) if k not in data]
        if missing:
            raise RuntimeError(f"Missing required configuration: {', '.join(missing)}") from e
        raise
