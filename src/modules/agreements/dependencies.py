from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from modules.agreements.services.agreement_service import AgreementService
from modules.agreements.storage import ContentStore, LocalContentStore


@lru_cache(maxsize=1)
def get_content_store() -> ContentStore:
    return LocalContentStore(settings.storage_root)


def get_agreement_service(
    db: Session = Depends(get_db),
    store: ContentStore = Depends(get_content_store)
) -> AgreementService:
    return AgreementService.from_settings(db, store)
