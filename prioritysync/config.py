"""Application configuration"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database (checkpoints, label timeline cache, sync logs)
    database_url: str = "sqlite:///./prioritysync.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # GitHub
    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    # Comma-separated repositories to scan. Accepts "owner/repo", https URLs or SSH remotes.
    #
    # Example: "octo-org/frontend,https://github.com/octo-org/desktop"
    repositories: str = ""

    # Notion
    notion_token: str | None = None
    notion_database_id: str | None = None
    notion_title_property: str = "Task"
    notion_priority_property: str = "Priority"
    notion_link_property: str = "GitHub Link"

    # Sync
    # Comma-separated "NotionValue:GithubLabel" pairs. Declaration order is also the
    # tie-break order when an issue carries more than one priority label.
    priority_labels: str = "High:High-Priority,Medium:Medium-Priority,Low:Low-Priority"
    timeline_window: int = 100
    page_size: int = 100
    scan_concurrency: int = 1
    # What to do when both sides were edited at the same instant: none | notion | github
    tie_break: str = "none"
    sync_interval_minutes: int = 10
    scheduler_enabled: bool = True

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False

    def repository_list(self) -> list[str]:
        return [r.strip() for r in (self.repositories or "").split(",") if r.strip()]


settings = Settings()
