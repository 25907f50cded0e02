import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from modules.agreements.errors import StorageError
from modules.agreements.services.tracking_store import DocumentTrackingStore
from modules.agreements.storage import UNSIGNED, ContentStore

logger = logging.getLogger(__name__)


def delete_stale_artifacts(session: Session, store: ContentStore, max_age_days: int = 30,
                           now: Optional[datetime] = None) -> List[str]:
    """
    Removes unsigned agreements older than ``max_age_days`` that no tracking
    record points at anymore. Returns the deleted paths.
    """
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=max_age_days)
    referenced = DocumentTrackingStore(session).referenced_paths()

    deleted = []
    for path, modified_at in store.list_files(UNSIGNED):
        if path in referenced or modified_at > cutoff:
            continue
        try:
            store.remove(path)
            deleted.append(path)
        except StorageError as e:
            logger.warning("Error deleting %s: %s", path, e)

    logger.info("Stale artifact sweep removed %d file(s) older than %s", len(deleted), cutoff.isoformat())
    return deleted
