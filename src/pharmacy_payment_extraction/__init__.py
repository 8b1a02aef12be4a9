"""Pharmacy Payment Extraction - high value items from payment schedules."""

from pharmacy_payment_extraction.api import app, create_app

__all__ = ["app", "create_app"]
__version__ = "0.1.0"


def main() -> None:
    """Run the FastAPI server using uvicorn."""
    import uvicorn

    from pharmacy_payment_extraction.config import settings

    uvicorn.run(
        "pharmacy_payment_extraction.api:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
    )
