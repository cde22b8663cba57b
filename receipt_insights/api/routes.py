"""FastAPI endpoints for the Receipt Insights API.

This module defines the routes for scanning receipts, managing expenses, and
running the asynchronous spend analysis. It wires together the ingestion
service, the expense store, and the per-owner analysis controllers.
"""

from collections.abc import AsyncIterator, Callable

from fastapi import APIRouter, Depends, HTTPException, Request, Response, UploadFile
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from receipt_insights.api.dependencies import (
    find_analysis_controller,
    get_controller_factory,
    get_expense_store,
    get_ingestion_service,
    remember_analysis_controller,
)
from receipt_insights.core.errors import (
    DuplicateExpenseError,
    ExpenseNotFoundError,
    InvalidImageError,
    InvalidRecordError,
    NoDataToAnalyzeError,
    OCRError,
    ReceiptParseError,
    StorageError,
)
from receipt_insights.core.models import (
    AnalysisStarted,
    ExpenseRecord,
    ExpenseUpdate,
    Idle,
    JobState,
    Running,
    ScannedReceipt,
)
from receipt_insights.core.utils import get_logger
from receipt_insights.services.expense_store import ExpenseStore
from receipt_insights.services.ingestion import ReceiptIngestionService
from receipt_insights.workers.analysis_controller import AnalysisJobController

router = APIRouter()
logger = get_logger("receipt-insights.api")


@router.get(
    "/health",
    summary="Health check",
    description="Simple health check endpoint. Returns status ok.",
    responses={200: {"description": "API is healthy.", "content": {"application/json": {"example": {"status": "ok"}}}}},
)
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.post(
    "/receipts/scan",
    response_model=ScannedReceipt,
    summary="Scan a receipt image into an expense draft",
    description=(
        "Upload a receipt image. The image is stored as JPEG in object storage, sent to the OCR service, "
        "and the recognized text is parsed into an expense draft. The draft is NOT saved; review it and "
        "send it to `POST /expenses`.\n\n"
        "**Response:**\n"
        "- 200 OK: the stored image key, its URL and the draft.\n"
        "- 400 Bad Request: the upload is not an image.\n"
        "- 502 Bad Gateway: storage, OCR or parsing failed."
    ),
    responses={400: {"description": "Not an image."}, 502: {"description": "Upstream failure."}},
)
def scan_receipt(
    owner_id: str,
    file: UploadFile,
    ingestion: ReceiptIngestionService = Depends(get_ingestion_service),
) -> ScannedReceipt:
    """Upload, OCR and parse a receipt image."""
    logger.info(f"Received scan request: filename={file.filename} owner={owner_id}")
    if file.content_type and not file.content_type.startswith("image/"):
        logger.warning(f"Rejected file (not an image): {file.filename}")
        raise HTTPException(400, "Only image files accepted")
    try:
        return ingestion.scan(file.file.read(), owner_id)
    except InvalidImageError as exc:
        raise HTTPException(400, str(exc)) from exc
    except (StorageError, OCRError, ReceiptParseError) as exc:
        logger.exception("Receipt scan failed")
        raise HTTPException(502, str(exc)) from exc


@router.get("/expenses", response_model=list[ExpenseRecord], summary="List an owner's expenses, newest first")
def list_expenses(owner_id: str, store: ExpenseStore = Depends(get_expense_store)) -> list[ExpenseRecord]:
    """List the expenses of an owner."""
    return store.fetch_all(owner_id)


@router.get(
    "/expenses/{expense_id}",
    response_model=ExpenseRecord,
    summary="Get one expense",
    responses={404: {"description": "Expense not found."}},
)
def get_expense(expense_id: str, store: ExpenseStore = Depends(get_expense_store)) -> ExpenseRecord:
    """Get an expense by id."""
    try:
        return store.get(expense_id)
    except ExpenseNotFoundError as exc:
        raise HTTPException(404, "Expense not found") from exc


@router.post(
    "/expenses",
    status_code=201,
    response_model=ExpenseRecord,
    summary="Save an expense",
    responses={409: {"description": "An expense with this id already exists."}},
)
def create_expense(record: ExpenseRecord, store: ExpenseStore = Depends(get_expense_store)) -> ExpenseRecord:
    """Save a new expense, typically a reviewed scan draft."""
    try:
        return store.insert(record)
    except DuplicateExpenseError as exc:
        raise HTTPException(409, str(exc)) from exc


@router.put(
    "/expenses/{expense_id}",
    response_model=ExpenseRecord,
    summary="Update an expense",
    description="Update the editable fields of an expense. The id and owner never change.",
    responses={404: {"description": "Expense not found."}},
)
def update_expense(
    expense_id: str, changes: ExpenseUpdate, store: ExpenseStore = Depends(get_expense_store)
) -> ExpenseRecord:
    """Update an expense."""
    try:
        return store.update(expense_id, changes)
    except ExpenseNotFoundError as exc:
        raise HTTPException(404, "Expense not found") from exc


@router.delete(
    "/expenses/{expense_id}",
    status_code=204,
    summary="Delete an expense",
    responses={404: {"description": "Expense not found."}},
)
def delete_expense(expense_id: str, store: ExpenseStore = Depends(get_expense_store)) -> Response:
    """Delete an expense."""
    try:
        store.delete(expense_id)
    except ExpenseNotFoundError as exc:
        raise HTTPException(404, "Expense not found") from exc
    return Response(status_code=204)


@router.post(
    "/analysis/{owner_id}/start",
    status_code=202,
    response_model=AnalysisStarted,
    summary="Start analyzing an owner's expenses",
    description=(
        "Start the asynchronous spend analysis over all expenses of the owner. A running analysis is "
        "cancelled first. Poll `GET /analysis/{owner_id}/state` or stream `GET /analysis/{owner_id}/events`.\n\n"
        "**Response:**\n"
        "- 202 Accepted: the job id and the initial `running` state.\n"
        "- 400 Bad Request: the owner has no expenses.\n"
        "- 422 Unprocessable Entity: an expense has an invalid amount."
    ),
    responses={
        202: {
            "description": "Analysis started.",
            "content": {
                "application/json": {
                    "example": {
                        "job_id": "123e4567-e89b-12d3-a456-426614174000",
                        "state": {"status": "running", "attempt": 0},
                    }
                }
            },
        },
        400: {"description": "No expenses to analyze."},
        422: {"description": "Invalid expense record."},
    },
)
async def start_analysis(
    owner_id: str,
    request: Request,
    store: ExpenseStore = Depends(get_expense_store),
    controller: AnalysisJobController | None = Depends(find_analysis_controller),
    new_controller: Callable[[], AnalysisJobController] = Depends(get_controller_factory),
) -> AnalysisStarted:
    """Fetch the owner's expenses and start the analysis job."""
    expenses = await run_in_threadpool(store.fetch_all, owner_id)
    created = controller is None
    if created:
        controller = new_controller()
    try:
        job_id = controller.start(expenses)
    except (NoDataToAnalyzeError, InvalidRecordError) as exc:
        if created:
            await controller.aclose()
        status = 400 if isinstance(exc, NoDataToAnalyzeError) else 422
        raise HTTPException(status, str(exc)) from exc
    if created:
        remember_analysis_controller(request, owner_id, controller)
    return AnalysisStarted(job_id=job_id, state=controller.state)


@router.post("/analysis/{owner_id}/cancel", response_model=JobState, summary="Cancel a running analysis")
async def cancel_analysis(
    controller: AnalysisJobController | None = Depends(find_analysis_controller),
) -> JobState:
    """Cancel the running analysis, if any, and return the resulting state."""
    if controller is None:
        return Idle()
    controller.cancel()
    return controller.state


@router.get(
    "/analysis/{owner_id}/state",
    response_model=JobState,
    summary="Get the analysis state",
    description=(
        "Return the current analysis state: `idle`, `running` (with `attempt`), `succeeded` (with `result`), "
        "`failed` (with `reason`) or `timed_out`. Owners that never started an analysis are `idle`."
    ),
)
async def get_analysis_state(
    controller: AnalysisJobController | None = Depends(find_analysis_controller),
) -> JobState:
    """Get the current analysis state."""
    if controller is None:
        return Idle()
    return controller.state


@router.get(
    "/analysis/{owner_id}/events",
    response_class=StreamingResponse,
    summary="Stream analysis state transitions",
    description=(
        "Server-sent events: the current state first, then every transition until the analysis succeeds, "
        "fails, times out or is cancelled."
    ),
)
async def stream_analysis_events(
    controller: AnalysisJobController | None = Depends(find_analysis_controller),
) -> StreamingResponse:
    """Stream the state transitions of the current analysis as server-sent events."""
    if controller is None:
        return StreamingResponse(iter([_sse(Idle())]), media_type="text/event-stream")
    subscription = controller.subscribe()
    current = controller.state

    async def events() -> AsyncIterator[str]:
        with subscription:
            yield _sse(current)
            if isinstance(current, Running):
                async for state in subscription.until_settled():
                    yield _sse(state)

    return StreamingResponse(events(), media_type="text/event-stream")


def _sse(state: JobState) -> str:
    return f"event: {state.status}\ndata: {state.model_dump_json()}\n\n"
