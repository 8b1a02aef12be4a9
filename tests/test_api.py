"""Tests for the FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from fastapi import status

from pharmacy_payment_extraction.api import create_app
from tests.fixtures import csv_bytes, workbook_bytes, zip_bytes

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@asynccontextmanager
async def create_test_client(
    patches: dict[str, Any] | None = None,
    raise_app_exceptions: bool = True,
) -> AsyncIterator[httpx.AsyncClient]:
    """Create an async test client with proper lifespan handling.

    Args:
        patches: Optional dictionary of patch targets and values.
        raise_app_exceptions: Whether unhandled errors propagate to the test
            after the 500 response has been sent.
    """
    for target, value in (patches or {}).items():
        patch(target, value).start()
    try:
        app = create_app()
        async with (
            app.router.lifespan_context(app),
            httpx.AsyncClient(
                transport=httpx.ASGITransport(
                    app=app, raise_app_exceptions=raise_app_exceptions
                ),
                base_url="http://test",
            ) as client,
        ):
            yield client
    finally:
        patch.stopall()


@pytest.fixture
async def client() -> AsyncIterator[httpx.AsyncClient]:
    """Create an async test client for the FastAPI application."""
    async with create_test_client() as ac:
        yield ac


class TestHealthEndpoint:
    """Tests for the /health endpoint."""

    async def test_health_check_returns_200(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == status.HTTP_200_OK

    async def test_health_check_returns_healthy_status(
        self, client: httpx.AsyncClient
    ) -> None:
        data = (await client.get("/health")).json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        # Timestamp should be valid ISO format
        datetime.fromisoformat(data["timestamp"])


class TestRequestId:
    """Tests for request ID propagation."""

    async def test_generated_request_id(self, client: httpx.AsyncClient) -> None:
        """Test a request ID is generated when none is sent."""
        response = await client.get("/health")
        assert response.headers["X-Request-ID"]

    async def test_request_id_is_echoed(self, client: httpx.AsyncClient) -> None:
        """Test a supplied request ID is echoed back."""
        response = await client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestHighValueItemsEndpoint:
    """Tests for POST /high-value-items."""

    async def test_extracts_items(
        self, client: httpx.AsyncClient, schedule_xlsx: bytes
    ) -> None:
        """Test a schedule upload returns items, summary and diagnostics."""
        response = await client.post(
            "/high-value-items",
            files={"file": ("march.xlsx", schedule_xlsx, XLSX_MIME)},
            data={"gross_ingredient_cost": "£42,258.00"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["filename"] == "march.xlsx"
        assert data["source_format"] == "xlsx"
        assert data["found"] is True
        assert [item["product_name"] for item in data["items"]] == [
            "Apixaban 5mg tablets",
            "Ensure Plus liquid",
            "Rivaroxaban 20mg tablets",
        ]
        assert data["items"][1] == {
            "product_name": "Ensure Plus liquid",
            "gic_incl_bb": 1250.5,
            "quantity": 30.0,
            "service_flag": "AS",
            "value_band": "high",
        }
        assert data["summary"]["total_value"] == 2112.9
        assert data["summary"]["share_of_gross_ingredient_cost"] == pytest.approx(5.0)
        assert data["diagnostics"]["outcome"] == "extracted"

    async def test_missing_report_is_not_an_error(
        self, client: httpx.AsyncClient
    ) -> None:
        """Test a schedule without the report returns 200 with found=false."""
        content = workbook_bytes({"Summary": [["Contractor", "FA123"]]})

        response = await client.post(
            "/high-value-items",
            files={"file": ("march.xlsx", content, XLSX_MIME)},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["found"] is False
        assert data["items"] == []
        assert data["diagnostics"]["outcome"] == "no_sheet"

    async def test_csv_upload(self, client: httpx.AsyncClient) -> None:
        """Test a CSV upload is processed."""
        content = csv_bytes(
            [["Product Name", "Cost"], ["Apixaban 5mg tablets", "£250.00"]]
        )

        response = await client.post(
            "/high-value-items",
            files={"file": ("High Value.csv", content, "text/csv")},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["items"][0]["gic_incl_bb"] == 250.0

    async def test_unsupported_format(self, client: httpx.AsyncClient) -> None:
        """Test an unsupported upload returns 400 with the request ID."""
        response = await client.post(
            "/high-value-items",
            files={"file": ("march.pdf", b"%PDF-1.7", "application/pdf")},
            headers={"X-Request-ID": "req-pdf"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data["error_code"] == "E1003"
        assert data["request_id"] == "req-pdf"
        assert data["details"]["extension"] == ".pdf"

    async def test_corrupt_workbook(self, client: httpx.AsyncClient) -> None:
        """Test a ZIP that is not a workbook returns 422."""
        response = await client.post(
            "/high-value-items",
            files={"file": ("march.xlsx", zip_bytes({"a.txt": b"a"}), XLSX_MIME)},
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "E1007"

    async def test_invalid_gross_ingredient_cost(
        self, client: httpx.AsyncClient, schedule_xlsx: bytes
    ) -> None:
        """Test an unparseable gross ingredient cost returns 400."""
        response = await client.post(
            "/high-value-items",
            files={"file": ("march.xlsx", schedule_xlsx, XLSX_MIME)},
            data={"gross_ingredient_cost": "lots"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data["error_code"] == "E2001"
        assert data["details"]["field"] == "gross_ingredient_cost"

    async def test_missing_file(self, client: httpx.AsyncClient) -> None:
        """Test a request without a file fails validation."""
        response = await client.post("/high-value-items")
        assert response.status_code == 422

    async def test_file_too_large(self) -> None:
        """Test uploads over the size limit return 413."""
        patches = {"pharmacy_payment_extraction.api.settings.max_file_size_mb": 1}
        async with create_test_client(patches) as client:
            response = await client.post(
                "/high-value-items",
                files={"file": ("big.xlsx", b"x" * (1024 * 1024 + 1), XLSX_MIME)},
            )

        assert response.status_code == 413
        data = response.json()
        assert data["error_code"] == "E1002"
        assert data["details"]["max_size_bytes"] == 1024 * 1024

    async def test_unexpected_error_is_hidden(self, schedule_xlsx: bytes) -> None:
        """Test unexpected failures return 500 without internals."""
        async with create_test_client(raise_app_exceptions=False) as client:
            with patch(
                "pharmacy_payment_extraction.services.document_processor."
                "WorkbookLoader.load_bytes",
                side_effect=RuntimeError("secret failure"),
            ):
                response = await client.post(
                    "/high-value-items",
                    files={"file": ("march.xlsx", schedule_xlsx, XLSX_MIME)},
                )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        data = response.json()
        assert data["error_code"] == "E9001"
        assert "secret failure" not in data["detail"]
