from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "sqlite+aiosqlite:///./data/stageboard.db"
  app_version: str = "v2026-10-19+r1"
  build_sha: str = "dev"
  api_docs_enabled: bool = True

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  log_level: str = "INFO"

  # Board client -> store service
  store_base_url: str = "http://localhost:8000"
  store_api_token: str | None = None
  store_user_agent: str = "Stageboard/0.1 (board-client)"
  store_timeout_seconds: float = 30.0

  shared_board_title: str = "Общая производственная доска"
  project_board_title: str = "Производственная доска проекта"

  seed_demo_board: bool = False

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
