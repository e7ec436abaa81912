"""One-shot entry point: build handles, run one sync, close everything"""

import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from prioritysync.config import Settings, settings as default_settings
from prioritysync.models.base import create_db_engine, create_session_factory, init_db
from prioritysync.services.github_client import GitHubClient
from prioritysync.services.notion_client import NotionTaskClient
from prioritysync.services.sync_service import PrioritySyncService

logger = logging.getLogger(__name__)


def build_clients(settings: Settings):
    if not settings.github_token:
        raise RuntimeError("GITHUB_TOKEN must be set")
    if not settings.notion_token or not settings.notion_database_id:
        raise RuntimeError("NOTION_TOKEN and NOTION_DATABASE_ID must be set")

    github = GitHubClient(settings.github_token, api_url=settings.github_api_url)
    try:
        notion = NotionTaskClient(
            settings.notion_token,
            settings.notion_database_id,
            title_property=settings.notion_title_property,
            priority_property=settings.notion_priority_property,
            link_property=settings.notion_link_property,
        )
    except Exception:
        github.close()
        raise
    return github, notion


def run_once(
    settings: Optional[Settings] = None,
    session_factory: Optional[Callable[[], Session]] = None,
) -> Dict[str, Any]:
    """Run the priority sync once and return its result."""
    settings = settings or default_settings
    if session_factory is None:
        engine = create_db_engine(settings.database_url)
        init_db(engine)
        session_factory = create_session_factory(engine)

    github, notion = build_clients(settings)
    try:
        db = session_factory()
        try:
            service = PrioritySyncService(db, github, notion, settings, session_factory=session_factory)
            return service.run()
        finally:
            db.close()
    finally:
        github.close()
        notion.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, default_settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    result = run_once()
    logger.info(f"Done: {result}")
