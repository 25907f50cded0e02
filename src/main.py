import logging
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from decimal import Decimal

from config import settings
from create_tables import create_tables
from database import SessionLocal
from logging_config import configure_logging

from modules.agreements.errors import AgreementError
from modules.agreements.job import start_cleanup_job
from modules.auth.services.auth_service import AuthService
from modules.loans.models import Loan, User, UserRole
from modules.auth.controllers.auth_controller import router as auth_router
from modules.loans.controllers.loan_controller import router as loan_router
from modules.agreements.controllers.agreement_controller import router as agreement_router
from modules.notifications.controllers.notification_controller import router as notification_router

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    configure_logging()
    create_tables()
    scheduler = start_cleanup_job()
    logger.info("Stale artifact sweep scheduled every %sh", settings.cleanup_interval_hours)
    if settings.seed_demo_data:
        _seed_demo_data()
    yield
    # --- Shutdown ---
    scheduler.shutdown(wait=False)
    logger.info("Application stopped")

def _seed_demo_data():
    """Creates an admin, a borrower and one loan on an empty database."""
    with SessionLocal() as session:
        if session.query(User).count() > 0:
            return

        admin = User(
            first_name="Carlos",
            last_name="López",
            email="admin@pockettloan.com",
            phone_number="+263 77 000 0001",
            password_hash=AuthService.get_password_hash("admin123"),
            role=UserRole.ADMIN,
            is_active=True
        )
        borrower = User(
            first_name="Jane",
            last_name="Doe",
            email="jane@pockettloan.com",
            password_hash=AuthService.get_password_hash("jane123"),
            role=UserRole.CUSTOMER,
            is_active=True
        )
        session.add_all([admin, borrower])
        session.flush()
        session.add(Loan(
            user_id=borrower.id,
            product_type="Solar Loan (LT)",
            amount=Decimal("1000"),
            interest_rate=Decimal("12"),
            term=12
        ))
        session.commit()
        logger.info("Seeded demo users %s and %s", admin.email, borrower.email)

async def agreement_error_handler(request: Request, exc: AgreementError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"code": exc.code, "detail": exc.message})

app = FastAPI(
    title="Loan Agreement Service",
    description="Loan agreement generation and e-signature API",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Accept", "Content-Type", "Authorization", "X-Requested-With", "Origin"],
    max_age=86400,
)
app.add_exception_handler(AgreementError, agreement_error_handler)

# Routers
app.include_router(auth_router)
app.include_router(loan_router, prefix="/loans")
app.include_router(agreement_router, prefix="/documents")
app.include_router(notification_router, prefix="/notifications", tags=["notifications"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
