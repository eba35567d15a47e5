from __future__ import annotations

from typing import ClassVar, final

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_NOTES_API_TOKEN_VALIDATION_ALIAS = AliasChoices("NOTES_API_TOKEN", "NOTES_TOKEN")


@final
class Settings(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )
    app_name: str = "Offline Notes"

    # Environment (ENVIRONMENT): development | production
    environment: str = "development"

    # 本地状态库（变更日志、离线笔记、ID 映射、远端镜像）
    database_url: str = "sqlite:///./offline_notes.db"

    notes_api_base_url: str = "http://localhost:3000"
    # Primary env: NOTES_API_TOKEN; also accept NOTES_TOKEN as alias.
    notes_api_token: str = Field(default="", validation_alias=_NOTES_API_TOKEN_VALIDATION_ALIAS)
    notes_api_timeout_seconds: float = 15.0
    notes_api_notes_path: str = "/api/notes"
    # Used by ConnectivityMonitor.probe(); any 2xx/4xx answer means the server is reachable.
    notes_api_health_path: str = "/api/notes"

    # 每次捕获写操作后立即落盘（不只在关闭/对账结束时保存）
    sync_autosave: bool = True
    # 离线 -> 在线切换时自动触发一次对账
    sync_on_reconnect: bool = True

    log_level: str = "INFO"

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":  # pyright: ignore[reportUnusedFunction]
        if self.environment.strip().lower() != "production":
            return self

        errors: list[str] = []
        if not self.notes_api_token.strip():
            errors.append("NOTES_API_TOKEN must be set in production")
        if not self.notes_api_base_url.strip().lower().startswith("https://"):
            errors.append("NOTES_API_BASE_URL must use https in production")

        if errors:
            raise ValueError("Invalid production settings: " + "; ".join(errors))
        return self

    def notes_url(self) -> str:
        return self.notes_api_base_url.rstrip("/") + "/" + self.notes_api_notes_path.strip("/")

    def health_url(self) -> str:
        return self.notes_api_base_url.rstrip("/") + "/" + self.notes_api_health_path.strip("/")

    def security_warnings(self) -> list[str]:
        warnings: list[str] = []
        if not self.notes_api_token.strip():
            warnings.append("NOTES_API_TOKEN is empty; remote calls will be unauthorized")
        if self.notes_api_base_url.strip().lower().startswith("http://"):
            warnings.append("NOTES_API_BASE_URL uses plain http")
        return warnings


# The validator is invoked by Pydantic at runtime.
_ = Settings._validate_production_settings


settings = Settings()
