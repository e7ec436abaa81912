"""Services"""

from prioritysync.services.github_client import GitHubClient
from prioritysync.services.notion_client import NotionTaskClient
from prioritysync.services.sync_service import PrioritySyncService

__all__ = ["GitHubClient", "NotionTaskClient", "PrioritySyncService"]
