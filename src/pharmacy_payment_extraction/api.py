"""FastAPI application for pharmacy payment extraction."""

import uuid
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import (
    FastAPI,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pharmacy_payment_extraction.config import settings, validate_settings_on_startup
from pharmacy_payment_extraction.models import (
    ErrorDetail,
    HealthResponse,
    HighValueItemsResponse,
)
from pharmacy_payment_extraction.services.document_processor import (
    HighValueDocumentProcessor,
)
from pharmacy_payment_extraction.services.summary import parse_currency_value
from pharmacy_payment_extraction.utils.exceptions import (
    ErrorCode,
    FileTooLargeError,
    PPEError,
    ValidationError,
)
from pharmacy_payment_extraction.utils.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)

configure_logging(
    level=settings.log_level_int,
    use_structured_formatter=True,
)
logger = get_logger(__name__)

API_VERSION = "0.1.0"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Pharmacy Payment Extraction API",
        description=(
            "Reads monthly pharmacy payment schedule spreadsheets and extracts "
            "the high value items report."
        ),
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    validate_settings_on_startup(settings)
    app.state.processor = HighValueDocumentProcessor(settings=settings)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next: Any) -> Any:
        """Assign a request ID, expose it to logging and echo it back."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        set_request_id(request_id)
        request.state.request_id = request_id
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()

    @app.exception_handler(PPEError)
    async def ppe_exception_handler(request: Request, exc: PPEError) -> JSONResponse:
        """Return application errors as structured JSON with their error code."""
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.error(
            f"PPE Error: {exc.message}",
            error_code=exc.error_code.value,
            http_status=exc.http_status,
        )
        return JSONResponse(
            status_code=exc.http_status,
            content=ErrorDetail(
                detail=exc.message,
                error_code=exc.error_code.value,
                details=exc.details if exc.details else None,
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.warning(f"HTTP Error: {exc.detail}", status_code=exc.status_code)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorDetail(
                detail=str(exc.detail),
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Log unexpected errors and return a generic response."""
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.exception(
            f"Unexpected error: {type(exc).__name__}",
            error_type=type(exc).__name__,
        )
        if settings.debug:
            detail = f"Internal server error: {type(exc).__name__}: {exc}"
        else:
            detail = "Internal server error. Please try again later."
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorDetail(
                detail=detail,
                error_code=ErrorCode.INTERNAL_ERROR.value,
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> dict[str, Any]:
        """Check the health status of the service."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": API_VERSION,
        }

    @app.post(
        "/high-value-items",
        response_model=HighValueItemsResponse,
        tags=["Extraction"],
        responses={
            400: {"model": ErrorDetail, "description": "Invalid upload"},
            413: {"model": ErrorDetail, "description": "File too large"},
            422: {"model": ErrorDetail, "description": "Unreadable workbook"},
        },
    )
    async def extract_high_value_items(
        request: Request,
        file: Annotated[
            UploadFile, File(description="Payment schedule spreadsheet")
        ],
        gross_ingredient_cost: Annotated[
            str | None,
            Form(description="Schedule gross ingredient cost, e.g. £45,210.33"),
        ] = None,
    ) -> HighValueItemsResponse:
        """Upload a payment schedule and extract its high value items.

        A schedule without a high value report is not an error: the response
        has ``found`` set to false and an empty item list, and the
        diagnostics explain what was looked for.
        """
        request_id = getattr(request.state, "request_id", None)

        if file.filename is None or file.filename == "":
            logger.warning("Upload missing file", request_id=request_id)
            raise ValidationError(
                message="A spreadsheet file must be provided",
                field="file",
            )

        gross: float | None = None
        if gross_ingredient_cost not in (None, ""):
            gross = parse_currency_value(gross_ingredient_cost)
            if gross is None:
                raise ValidationError(
                    message=(
                        f"gross_ingredient_cost '{gross_ingredient_cost}' "
                        "is not a number"
                    ),
                    field="gross_ingredient_cost",
                )

        content = await file.read()
        file_size = len(content)
        if file_size > settings.max_file_size_bytes:
            logger.warning(
                "File too large",
                file_size=file_size,
                max_size=settings.max_file_size_bytes,
                request_id=request_id,
            )
            raise FileTooLargeError(
                file_size=file_size,
                max_size=settings.max_file_size_bytes,
                file_path=file.filename,
            )

        processor: HighValueDocumentProcessor = request.app.state.processor
        response = await run_in_threadpool(
            processor.process, content, file.filename, gross
        )
        logger.info(
            "Upload processed",
            filename=file.filename,
            file_size=file_size,
            found=response.found,
            items=len(response.items),
            request_id=request_id,
        )
        return response

    return app


app = create_app()
