"""FastAPI dependencies for DI (settings, DB, store, analysis controller, ingestion).

Every collaborator is provided through a dependency so tests can swap it with
``app.dependency_overrides``. Analysis controllers are created per owner on
start and kept in ``app.state.analysis_controllers``.
"""

from collections.abc import Callable
from functools import partial

from fastapi import Depends, Request
from sqlalchemy.orm import sessionmaker

from receipt_insights.agents import AgentRegistry, BaseReceiptParser
from receipt_insights.core.settings import Settings, get_settings
from receipt_insights.core.utils import get_logger
from receipt_insights.services.analysis_backend import (
    AnalysisBackend,
    DeterministicAnalysisBackend,
    HttpAnalysisBackend,
)
from receipt_insights.services.expense_store import ExpenseStore
from receipt_insights.services.ingestion import ReceiptIngestionService
from receipt_insights.services.ocr_client import OCRClient
from receipt_insights.services.receipt_storage import ReceiptImageStorage
from receipt_insights.workers.analysis_controller import AnalysisJobController
from receipt_insights.workers.scheduling import AsyncioScheduler, Scheduler

logger = get_logger("receipt-insights.api")


def get_session_factory(request: Request) -> sessionmaker:
    """Provide the session factory created in the app lifespan."""
    return request.app.state.session_factory


def get_expense_store(session_factory: sessionmaker = Depends(get_session_factory)) -> ExpenseStore:
    """Provide an ExpenseStore instance for dependency injection."""
    return ExpenseStore(session_factory)


def get_scheduler_factory(settings: Settings = Depends(get_settings)) -> Callable[[], Scheduler]:
    """Provide the factory for the scheduler of a new analysis controller."""
    return partial(AsyncioScheduler, time_unit=settings.analysis_time_unit)


def get_backend_factory(settings: Settings = Depends(get_settings)) -> Callable[[], AnalysisBackend]:
    """Provide the factory for the HTTP backend when configured, the deterministic one otherwise."""
    if settings.analysis_backend_url:
        return partial(
            HttpAnalysisBackend, settings.analysis_backend_url, timeout=settings.analysis_backend_timeout
        )
    return partial(DeterministicAnalysisBackend, complete_from_attempt=settings.analysis_complete_from_attempt)


def find_analysis_controller(owner_id: str, request: Request) -> AnalysisJobController | None:
    """Provide the owner's analysis controller if one was started, without creating it."""
    return request.app.state.analysis_controllers.get(owner_id)


def get_controller_factory(
    settings: Settings = Depends(get_settings),
    backend_factory: Callable[[], AnalysisBackend] = Depends(get_backend_factory),
    scheduler_factory: Callable[[], Scheduler] = Depends(get_scheduler_factory),
) -> Callable[[], AnalysisJobController]:
    """Provide a factory for new analysis controllers.

    The backend and the scheduler are only built when a controller is, so
    requests for an owner that already has one allocate nothing.
    """

    def create() -> AnalysisJobController:
        return AnalysisJobController.from_settings(settings, backend_factory(), scheduler_factory())

    return create


def remember_analysis_controller(request: Request, owner_id: str, controller: AnalysisJobController) -> None:
    """Keep a started controller so later requests for the owner find it."""
    logger.info(f"Created analysis controller for owner {owner_id}")
    request.app.state.analysis_controllers[owner_id] = controller


def get_receipt_parser(
    settings: Settings = Depends(get_settings),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> BaseReceiptParser:
    """Provide the configured receipt parser."""
    name = settings.receipt_agent
    if name == "groq" and not settings.groq_api_key:
        logger.warning("No Groq API key configured, using the placeholder receipt parser")
        name = "placeholder"
    return AgentRegistry.get(name)(settings, session_factory)


def get_ingestion_service(
    settings: Settings = Depends(get_settings),
    parser: BaseReceiptParser = Depends(get_receipt_parser),
) -> ReceiptIngestionService:
    """Provide a ReceiptIngestionService wired to S3, OCR and the parser."""
    storage = ReceiptImageStorage(settings)
    ocr = OCRClient(settings.ocr_endpoint_url, timeout=settings.ocr_timeout)
    return ReceiptIngestionService(storage, ocr, parser)
