from apscheduler.schedulers.background import BackgroundScheduler

from config import settings
from database import SessionLocal
from modules.agreements.services.cleanup import delete_stale_artifacts
from modules.agreements.storage import LocalContentStore


def start_cleanup_job() -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    store = LocalContentStore(settings.storage_root)

    def job():
        with SessionLocal() as session:
            delete_stale_artifacts(session, store, settings.cleanup_max_age_days)

    scheduler.add_job(job, 'interval', hours=settings.cleanup_interval_hours, id="stale-artifact-sweep")
    scheduler.start()
    return scheduler
