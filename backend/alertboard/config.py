from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./alerts.db"
    TEST_DATABASE_URL: str = "sqlite+aiosqlite:///./test.db"

    # Jira Cloud REST API (ticket ingestion)
    JIRA_SERVER: str = "https://tidb.atlassian.net"
    JIRA_USER: str = ""
    JIRA_TOKEN: str = ""
    JIRA_PROJECTS: str = "O11YDEV,O11YSTAG,O11Y"
    JIRA_PAGE_SIZE: int = 100
    JIRA_MAX_PAGES: int = 500
    JIRA_TIMEOUT_SECONDS: float = 30.0
    JIRA_RAW_ALERT_FIELD: str = "customfield_10160"

    # Name lookup service (cluster / tenant display names)
    NAME_SERVICE_URL: str = ""
    NAME_SERVICE_TIMEOUT_SECONDS: float = 2.0

    # Component -> category mapping
    CATEGORY_CONFIG_PATH: str = "config/component_categories.yaml"
    CATEGORY_RELOAD_SECONDS: float = 60.0

    SYNC_INTERVAL_SECONDS: int = 3600
    INITIAL_FETCH_DAYS: int = 30
    AUTO_CREATE_TABLES: bool = True

    CORS_ORIGINS: str = "*"

    model_config = {"env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _fix_database_url(self):
        """Render provides postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if self.DATABASE_URL.startswith("postgresql://"):
            self.DATABASE_URL = self.DATABASE_URL.replace(
                "postgresql://", "postgresql+asyncpg://", 1,
            )
        return self

    @property
    def jira_configured(self) -> bool:
        return bool(self.JIRA_USER and self.JIRA_TOKEN)

    @property
    def jira_project_keys(self) -> list[str]:
        return [p.strip() for p in self.JIRA_PROJECTS.split(",") if p.strip()]


settings = Settings()
