"""API endpoints for triggering donation imports."""

import os
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import limiter, verify_api_key
from ..database import get_async_session_factory, get_db
from ..database.ledger import ledger_transaction
from .config import load_settings
from .importer import BatchImporter
from .profiles import WEBHOOK, get_profile
from .report import ImportReportGenerator

logger = logging.getLogger(__name__)

IMPORT_RATE_LIMIT = os.getenv("IMPORT_RATE_LIMIT", "30/minute")
MAX_ROWS_PER_REQUEST = 5000

router = APIRouter(prefix="/imports", tags=["imports"])


class ImportRequestBody(BaseModel):
    """Request body for an import run."""
    profile: str = Field(default=WEBHOOK.name, description="Column profile of the rows")
    rows: List[Dict[str, Any]] = Field(
        ...,
        max_length=MAX_ROWS_PER_REQUEST,
        description="Raw gateway rows, in processing order",
    )


@router.post("")
@limiter.limit(IMPORT_RATE_LIMIT)
async def create_import(
    request: Request,
    body: ImportRequestBody,
    format: str = Query(default="json", description="Output format: json, csv, text"),
    api_key: str = Depends(verify_api_key),
):
    """
    Import a batch of gateway rows into the ledger.

    Rows are processed in order, each in its own transaction. The response
    is the run summary: per-outcome counters plus an entry for every row
    that raised.
    """
    if format not in ("json", "csv", "text"):
        raise HTTPException(
            status_code=400,
            detail="format must be one of: json, csv, text"
        )

    try:
        profile = get_profile(body.profile)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    session_factory = get_async_session_factory()
    importer = BatchImporter(
        lambda: ledger_transaction(session_factory),
        profile,
        settings=load_settings(),
    )

    logger.info(f"Starting API import of {len(body.rows)} rows with profile {profile.name}")
    summary = await importer.run(body.rows)

    if format == "json":
        return summary.to_full_dict()

    generator = ImportReportGenerator(summary)
    if format == "csv":
        return PlainTextResponse(content=generator.to_csv(), media_type="text/csv")
    return PlainTextResponse(content=generator.to_summary_text(), media_type="text/plain")


@router.get("/health")
async def imports_health(db: AsyncSession = Depends(get_db)):
    """Health check endpoint for the import service, including the database."""
    await db.execute(text("SELECT 1"))
    return {"status": "healthy", "service": "imports"}
