"""
HTTP API for Review Desk (FastAPI)

Run with:
    uvicorn review_desk.api:app --reload
or:
    review-desk serve
"""
import json
import logging
from datetime import datetime
from functools import lru_cache
from typing import Optional, List, Any

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from . import __version__, config
from .classify import ReviewClassifier
from .collect import integration_status
from .database import DatabaseManager, AnalyticsQueries
from .database.models import Review
from .export import TEMPLATE_FILENAME, export_filename, reviews_to_csv, template_csv
from .importer import ReviewImporter
from .mailbox import group_threads, validate_messages
from .schemas import (
    AnalysisOut, AnalyzeRequest, ImportResultOut, MailboxImportRequest,
    MarketplaceImportRequest, ProductOut, ReplyRequest, ReviewOut, StatusUpdate,
)
from .transformers import filter_reviews_df
from .utils import (
    AuthenticationError, ExternalServiceError, NotFoundError, ValidationError,
)
from .workflow import WorkflowService

logger = logging.getLogger(__name__)

app = FastAPI(title="Review Desk API", version=__version__)


# =========================
# Dependencies
# =========================
@lru_cache(maxsize=1)
def _default_db() -> DatabaseManager:
    db = DatabaseManager()
    db.initialize_schema()
    return db


def get_db() -> DatabaseManager:
    return _default_db()


def get_classifier() -> ReviewClassifier:
    return ReviewClassifier()


# =========================
# Error Mapping
# =========================
def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message})


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError):
    return _error(400, str(exc))


@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: NotFoundError):
    return _error(404, str(exc))


@app.exception_handler(AuthenticationError)
async def _auth_error(request: Request, exc: AuthenticationError):
    return _error(400, str(exc))


@app.exception_handler(ExternalServiceError)
async def _external_error(request: Request, exc: ExternalServiceError):
    logger.error(f"{request.url.path}: {exc}")
    return _error(502, str(exc))


# =========================
# Helpers
# =========================
def _json_default(value: Any):
    if isinstance(value, (pd.Timestamp, datetime)):
        return value.isoformat()
    if isinstance(value, np.generic):
        return value.item()
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


def _jsonable(data: Any) -> Any:
    return json.loads(json.dumps(data, default=_json_default))


def _frame_to_reviews(df: pd.DataFrame) -> List[ReviewOut]:
    if df is None or df.empty:
        return []
    clean = df.astype(object).where(pd.notna(df), None)
    return [ReviewOut.model_validate(Review.from_row(row)) for row in clean.to_dict("records")]


def _filtered_frame(
    db: DatabaseManager,
    search: Optional[str],
    marketplace: Optional[List[str]],
    sentiment: Optional[List[str]],
    severity: Optional[List[str]],
    status: Optional[List[str]],
    category: Optional[str],
    min_rating: Optional[int],
    max_rating: Optional[int],
    date_range: Optional[str],
) -> pd.DataFrame:
    return filter_reviews_df(
        db.get_reviews_df(),
        search=search,
        marketplace=marketplace,
        sentiment=sentiment,
        severity=severity,
        status=status,
        category=category,
        min_rating=min_rating,
        max_rating=max_rating,
        date_range=date_range,
    )


def _out(model) -> dict:
    return model.model_dump(by_alias=True, mode="json")


# =========================
# Routes
# =========================
@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}


@app.get("/api/reviews")
def list_reviews(
    search: Optional[str] = None,
    marketplace: Optional[List[str]] = Query(default=None),
    sentiment: Optional[List[str]] = Query(default=None),
    severity: Optional[List[str]] = Query(default=None),
    status: Optional[List[str]] = Query(default=None),
    category: Optional[str] = None,
    min_rating: Optional[int] = Query(default=None, alias="minRating"),
    max_rating: Optional[int] = Query(default=None, alias="maxRating"),
    date_range: Optional[str] = Query(default=None, alias="dateRange"),
    db: DatabaseManager = Depends(get_db),
):
    """All stored reviews, newest first by reported creation time"""
    df = _filtered_frame(
        db, search, marketplace, sentiment, severity, status,
        category, min_rating, max_rating, date_range,
    )
    return [_out(r) for r in _frame_to_reviews(df)]


@app.get("/api/reviews/{review_id}")
def get_review(review_id: str, db: DatabaseManager = Depends(get_db)):
    return _out(ReviewOut.model_validate(db.get_review(review_id)))


@app.patch("/api/reviews/{review_id}/status")
def update_status(
    review_id: str,
    body: StatusUpdate,
    db: DatabaseManager = Depends(get_db),
):
    review = WorkflowService(db).transition(review_id, body.status)
    return _out(ReviewOut.model_validate(review))


@app.post("/api/reviews/{review_id}/reply")
def draft_reply(
    review_id: str,
    db: DatabaseManager = Depends(get_db),
    classifier: ReviewClassifier = Depends(get_classifier),
):
    review = WorkflowService(db).draft_reply(review_id, classifier)
    return _out(ReviewOut.model_validate(review))


@app.post("/api/reviews/{review_id}/analyze")
def reanalyze_review(
    review_id: str,
    db: DatabaseManager = Depends(get_db),
    classifier: ReviewClassifier = Depends(get_classifier),
):
    """Re-run classification for a stored review"""
    review = WorkflowService(db).reanalyze(review_id, classifier)
    return _out(ReviewOut.model_validate(review))


@app.post("/api/import")
async def import_reviews(
    file: Optional[UploadFile] = File(default=None),
    marketplace: Optional[str] = Form(default=None),
    db: DatabaseManager = Depends(get_db),
    classifier: ReviewClassifier = Depends(get_classifier),
):
    """Import a CSV/JSON upload for one marketplace"""
    if file is None:
        raise ValidationError("No file uploaded")
    raw = await file.read()
    importer = ReviewImporter(db, classifier=classifier)
    result = await run_in_threadpool(importer.import_file, file.filename or "", raw, marketplace)
    return _out(ImportResultOut.model_validate(result.to_dict()))


@app.post("/api/import/marketplace")
def import_marketplace(
    body: MarketplaceImportRequest,
    db: DatabaseManager = Depends(get_db),
    classifier: ReviewClassifier = Depends(get_classifier),
):
    importer = ReviewImporter(db, classifier=classifier, classify=body.classify)
    result = importer.import_from_marketplace(
        body.marketplace,
        body.product,
        provider=body.provider,
        full_sync=body.full_sync,
    )
    return _out(ImportResultOut.model_validate(result.to_dict()))


@app.post("/api/import/mailbox")
def import_mailbox(
    body: MailboxImportRequest,
    db: DatabaseManager = Depends(get_db),
    classifier: ReviewClassifier = Depends(get_classifier),
):
    importer = ReviewImporter(db, classifier=classifier, classify=body.classify)
    result = importer.import_mailbox(body.messages, use_ai_filter=body.use_ai_filter)
    return _out(ImportResultOut.model_validate(result.to_dict()))


@app.post("/api/mailbox/threads")
def mailbox_threads(body: MailboxImportRequest):
    """Group raw messages into threads (newest first) without importing"""
    messages, invalid = validate_messages(body.messages)
    threads = [
        {
            "threadId": t.thread_id,
            "subject": t.subject,
            "lastReceivedAt": t.last_received_at.isoformat(),
            "unreadCount": t.unread_count,
            "messageCount": len(t.messages),
            "messageIds": [m.id for m in t.messages],
        }
        for t in group_threads(messages)
    ]
    return {"threads": threads, "invalid": invalid}


@app.get("/api/import/template")
def download_template():
    return Response(
        content=template_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{TEMPLATE_FILENAME}"'},
    )


@app.get("/api/export")
def export_reviews(
    search: Optional[str] = None,
    marketplace: Optional[List[str]] = Query(default=None),
    sentiment: Optional[List[str]] = Query(default=None),
    severity: Optional[List[str]] = Query(default=None),
    status: Optional[List[str]] = Query(default=None),
    category: Optional[str] = None,
    min_rating: Optional[int] = Query(default=None, alias="minRating"),
    max_rating: Optional[int] = Query(default=None, alias="maxRating"),
    date_range: Optional[str] = Query(default=None, alias="dateRange"),
    db: DatabaseManager = Depends(get_db),
):
    """CSV of the currently filtered reviews"""
    df = _filtered_frame(
        db, search, marketplace, sentiment, severity, status,
        category, min_rating, max_rating, date_range,
    )
    return Response(
        content=reviews_to_csv(df),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@app.post("/api/analyze-review")
def analyze_review(
    body: AnalyzeRequest,
    classifier: ReviewClassifier = Depends(get_classifier),
):
    analysis = classifier.analyze_review(body.content, title=body.title, rating=body.rating)
    return _out(AnalysisOut.model_validate(analysis))


@app.post("/api/generate-reply")
def generate_reply(
    body: ReplyRequest,
    classifier: ReviewClassifier = Depends(get_classifier),
):
    reply = classifier.generate_reply(
        body.content,
        body.customer_name,
        body.marketplace,
        body.sentiment,
        body.severity,
    )
    return {"reply": reply}


@app.get("/api/products")
def list_products(
    platform: Optional[str] = None,
    db: DatabaseManager = Depends(get_db),
):
    df = db.get_products_df(platform)
    if df.empty:
        return []
    clean = df.astype(object).where(pd.notna(df), None)
    return [_out(ProductOut.model_validate(row)) for row in clean.to_dict("records")]


@app.get("/api/analytics/overview")
def analytics_overview(db: DatabaseManager = Depends(get_db)):
    return _jsonable(AnalyticsQueries(db).get_overview_stats())


@app.get("/api/integrations")
def integrations():
    return {
        **integration_status(),
        "marketplaces": config.IMPORTABLE_MARKETPLACES,
    }
