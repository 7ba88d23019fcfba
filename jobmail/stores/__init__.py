from .base import RecordStore
from .csv_store import CsvStore
from .memory import MemoryStore
from .notion import NotionStore

from jobmail.log import get_logger

log = get_logger(__name__)

__all__ = ["RecordStore", "CsvStore", "MemoryStore", "NotionStore", "get_store"]


def get_store(settings, env_getter, dry_run: bool = False) -> RecordStore:
    if dry_run:
        log.info("Dry run — records kept in memory only")
        return MemoryStore()

    if env_getter("NOTION_API_KEY") and env_getter("NOTION_DATABASE_ID"):
        log.info("Registered store: Notion database")
        return NotionStore(env_getter("NOTION_API_KEY"), env_getter("NOTION_DATABASE_ID"))

    path = settings.resolved_csv_path()
    log.info("No Notion credentials — tracking applications in %s", path)
    return CsvStore(path)
