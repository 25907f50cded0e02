# create_tables.py
import logging

from database import engine, Base
# Import every model so it registers with Base
from modules.loans.models.user import User
from modules.loans.models.loan import Loan
from modules.agreements.models.agreement_document import LoanAgreementDocument, AgreementVersion
from modules.notifications.models.notification import Notification

logger = logging.getLogger(__name__)

def create_tables(bind=None):
    """Creates every table on the configured database"""
    bind = bind or engine
    logger.info("Creating tables: %s", list(Base.metadata.tables.keys()))
    Base.metadata.create_all(bind=bind)

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_tables()
