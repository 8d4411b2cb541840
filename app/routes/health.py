"""Health check endpoint for monitoring and deployment verification.

This module provides a health check endpoint that verifies the application
is running, can connect to the database, and reports whether submission
receipts can be sent.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.database import get_db
from app.services.notifications import ReceiptMailer, get_receipt_mailer
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(
    db: Session = Depends(get_db),
    mailer: ReceiptMailer = Depends(get_receipt_mailer),
) -> dict:
    """Health check endpoint.

    Verifies that:
    1. The application is running
    2. Database connection is working

    Mail configuration is reported but does not affect health, since
    receipts are optional.

    Returns:
        dict: Health check status with database and mail info

    Raises:
        HTTPException: If database connection fails (503 Service Unavailable)

    Example response:
        {
            "status": "healthy",
            "database": "connected",
            "mail": "configured"
        }
    """
    try:
        # Test database connection with simple query
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(
            status_code=503,
            detail="Service unavailable - database connection failed"
        )

    mail_configured = mailer.mail_status()["configured"]
    logger.debug("Health check passed")

    return {
        "status": "healthy",
        "database": "connected",
        "mail": "configured" if mail_configured else "not_configured"
    }
