"""Main entrypoint and application factory for the Receipt Insights API.

This module initializes the FastAPI application, configures logging, sets up the database, and exposes the Scalar API reference endpoint for interactive OpenAPI documentation. It also includes the main entrypoint for running the app with Uvicorn.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from scalar_fastapi import get_scalar_api_reference

from receipt_insights import __version__
from receipt_insights.api.routes import router
from receipt_insights.core.db import create_session_factory, get_engine, init_db
from receipt_insights.core.settings import get_settings
from receipt_insights.core.utils import add_file_handler, get_logger


# --- Logging Setup ---
def setup_logging() -> None:
    """Configure logging to file and console for every project logger."""
    settings = get_settings()
    logger = get_logger("receipt-insights")
    logger.setLevel(logging.INFO)
    add_file_handler(logger, settings.log_dir, "receipt_insights.log")


setup_logging()
logger = get_logger("receipt-insights")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the tables, the session factory and the controller directory; close controllers on shutdown."""
    settings = get_settings()
    engine = get_engine(settings.database_url)
    init_db(engine)
    app.state.session_factory = create_session_factory(engine)
    app.state.analysis_controllers = {}
    logger.info("Receipt Insights started")
    yield
    for controller in app.state.analysis_controllers.values():
        await controller.aclose()
    engine.dispose()
    logger.info("Receipt Insights stopped")


app = FastAPI(
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    title="Receipt Insights API",
    description="""
    The Receipt Insights API stores receipt-based expenses and analyzes spending asynchronously.

    **Endpoints:**
    - `POST /receipts/scan`: Upload a receipt image; returns an expense draft extracted via OCR.
    - `GET|POST /expenses`, `GET|PUT|DELETE /expenses/{{expense_id}}`: Manage expenses.
    - `POST /analysis/{{owner_id}}/start`: Start the spend analysis. Returns a `job_id`.
    - `GET /analysis/{{owner_id}}/state`: Current analysis state.
    - `GET /analysis/{{owner_id}}/events`: Stream analysis state transitions.
    - `POST /analysis/{{owner_id}}/cancel`: Cancel a running analysis.
    - `GET /health`: Health check endpoint.
    - `GET /scalar`: Interactive Scalar OpenAPI documentation.
    """,
    version=__version__,
)
app.include_router(router)


@app.get("/scalar", include_in_schema=False)
async def scalar_docs() -> HTMLResponse:
    """Return Scalar API reference."""
    return get_scalar_api_reference(openapi_url=app.openapi_url, title=app.title)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("main:app", host=settings.server_host, port=settings.server_port, reload=True)
