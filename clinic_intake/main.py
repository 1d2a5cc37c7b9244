from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware

from clinic_intake.core.config import settings
from clinic_intake.db.session import commit_or_raise, engine, get_db
from clinic_intake.exceptions import IntegrationError, register_exception_handlers
from clinic_intake.logging_utils import (
    _patient_id_ctx_var,
    _request_id_ctx_var,
    configure_logging,
    set_patient_context,
)
from clinic_intake.models.base import Base
from clinic_intake.schemas import PatientCreate, PatientUpdate, PaymentCreate
from clinic_intake.services import (
    add_payment,
    create_patient,
    delete_patient,
    get_patient,
    get_payment,
    list_for_patient,
    list_patients,
    remove_payment,
    serialize_patient,
    serialize_payment,
    todays_summary,
    update_patient,
)
from clinic_intake.services.daily_summary import send_daily_summary
from clinic_intake.services.events import (
    EventDispatcher,
    Integrations,
    PatientAction,
    PatientEvent,
)
from clinic_intake.services.sheets import resolve_sheets_sync

configure_logging(settings.log_level)

logger = logging.getLogger(__name__)

REQUEST_COUNTER = Counter(
    "clinic_intake_requests_total",
    "Total number of processed HTTP requests.",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "clinic_intake_request_duration_seconds",
    "HTTP request latency in seconds.",
    ["method", "path"],
)


def build_integrations() -> Integrations:
    """Resolve the outbound collaborators for this process."""

    return Integrations.from_settings(settings, resolve_sheets_sync(settings))


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        Base.metadata.create_all(bind=engine)
        logger.info("database tables ensured")
    app.state.integrations = build_integrations()
    logger.info(
        "clinic intake API started",
        extra={"dispatch_mode": app.state.integrations.dispatch_mode.value},
    )
    yield


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

register_exception_handlers(app)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Populate request context for logging."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        request.state.request_id = request_id
        request_id_token = _request_id_ctx_var.set(request_id)
        patient_token = _patient_id_ctx_var.set(None)

        try:
            response = await call_next(request)
        finally:
            _request_id_ctx_var.reset(request_id_token)
            _patient_id_ctx_var.reset(patient_token)

        response.headers["X-Request-ID"] = request_id
        return response


def _route_path(request: Request) -> str:
    # Route templates keep metric label cardinality bounded by the route table.
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Emit structured access logs and feed metrics."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        start_time = time.perf_counter()
        method = request.method

        try:
            response = await call_next(request)
        except Exception:
            path = _route_path(request)
            elapsed = time.perf_counter() - start_time
            REQUEST_COUNTER.labels(method=method, path=path, status="500").inc()
            REQUEST_LATENCY.labels(method=method, path=path).observe(elapsed)
            logger.exception(
                "request failed",
                extra={
                    "method": method,
                    "path": path,
                    "duration_ms": round(elapsed * 1000, 2),
                },
            )
            raise

        path = _route_path(request)
        elapsed = time.perf_counter() - start_time
        status_code = response.status_code
        REQUEST_COUNTER.labels(method=method, path=path, status=str(status_code)).inc()
        REQUEST_LATENCY.labels(method=method, path=path).observe(elapsed)

        logger.info(
            "request completed",
            extra={
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(elapsed * 1000, 2),
            },
        )

        return response


app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AccessLogMiddleware)


def get_integrations(request: Request) -> Integrations:
    integrations = getattr(request.app.state, "integrations", None)
    if integrations is None:
        integrations = build_integrations()
        request.app.state.integrations = integrations
    return integrations


def get_event_dispatcher(
    background_tasks: BackgroundTasks,
    integrations: Integrations = Depends(get_integrations),
) -> EventDispatcher:
    return integrations.dispatcher(background_tasks)


def parse_identifier(raw_id: str, detail: str) -> UUID:
    """Unparseable identifiers cannot match a record, so they answer 404."""

    try:
        return UUID(raw_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail) from None


@app.get("/metrics")
def metrics() -> Response:
    """Expose Prometheus metrics for scraping."""

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/api/health")
def health() -> dict[str, str]:
    """Health check endpoint used by infrastructure probes."""

    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/api/patients")
def list_patients_endpoint(db: Session = Depends(get_db)) -> list[dict[str, Any]]:
    """List patients, newest first."""

    return [serialize_patient(patient) for patient in list_patients(db)]


@app.get("/api/patients/{patient_id}")
def get_patient_endpoint(patient_id: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    patient = get_patient(db, parse_identifier(patient_id, "Patient not found"))
    if not patient:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Patient not found")
    return serialize_patient(patient)


@app.post("/api/patients", status_code=status.HTTP_201_CREATED)
def create_patient_endpoint(
    payload: PatientCreate,
    db: Session = Depends(get_db),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> dict[str, Any]:
    """Register a patient visit and notify the clinic."""

    patient = create_patient(db, payload)
    set_patient_context(patient.id)
    commit_or_raise(db)
    serialized = serialize_patient(patient)
    dispatcher.emit(PatientEvent(PatientAction.CREATED, serialized))
    return serialized


@app.patch("/api/patients/{patient_id}")
def update_patient_endpoint(
    patient_id: str,
    payload: PatientUpdate,
    db: Session = Depends(get_db),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> dict[str, Any]:
    """Apply a partial update to a patient."""

    patient = update_patient(db, parse_identifier(patient_id, "Patient not found"), payload)
    if not patient:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Patient not found")
    set_patient_context(patient.id)
    commit_or_raise(db)
    serialized = serialize_patient(patient)
    dispatcher.emit(PatientEvent(PatientAction.UPDATED, serialized))
    return serialized


@app.delete("/api/patients/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_patient_endpoint(
    patient_id: str,
    db: Session = Depends(get_db),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> Response:
    """Delete a patient and its payments."""

    identifier = parse_identifier(patient_id, "Patient not found")
    patient = get_patient(db, identifier)
    if not patient:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Patient not found")
    set_patient_context(identifier)
    snapshot = serialize_patient(patient)
    if not delete_patient(db, identifier):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Patient not found")
    commit_or_raise(db)
    dispatcher.emit(PatientEvent(PatientAction.DELETED, snapshot))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/api/patients/{patient_id}/payments")
def list_payments_endpoint(patient_id: str, db: Session = Depends(get_db)) -> list[dict[str, Any]]:
    """Return a patient's ledger, newest first."""

    try:
        identifier = UUID(patient_id)
    except ValueError:
        return []
    return [serialize_payment(payment) for payment in list_for_patient(db, identifier)]


@app.post("/api/patients/{patient_id}/payments", status_code=status.HTTP_201_CREATED)
def add_payment_endpoint(
    patient_id: str,
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> dict[str, Any]:
    """Record a partial payment for a patient."""

    identifier = parse_identifier(patient_id, "Patient not found")
    payment = add_payment(db, identifier, payload.amount, payload.note)
    commit_or_raise(db)
    serialized = serialize_payment(payment)
    dispatcher.emit(
        PatientEvent(
            PatientAction.PAYMENT_ADDED,
            serialize_patient(payment.patient),
            payment=serialized,
        )
    )
    return serialized


@app.delete("/api/payments/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_payment_endpoint(
    payment_id: str,
    db: Session = Depends(get_db),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> Response:
    """Remove a ledger entry and rebalance its patient."""

    identifier = parse_identifier(payment_id, "Payment not found")
    payment = get_payment(db, identifier)
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    snapshot = serialize_payment(payment)
    owner_id = payment.patient_id

    if not remove_payment(db, identifier):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    commit_or_raise(db)

    patient = get_patient(db, owner_id)
    if patient:
        dispatcher.emit(
            PatientEvent(PatientAction.PAYMENT_REMOVED, serialize_patient(patient), payment=snapshot)
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/api/sync-to-sheets")
def sync_to_sheets(
    db: Session = Depends(get_db),
    integrations: Integrations = Depends(get_integrations),
) -> dict[str, Any]:
    """Rewrite the whole patient spreadsheet from the database."""

    patients = [serialize_patient(patient) for patient in list_patients(db)]
    sheets = integrations.notifier.sheets
    try:
        count = sheets.sync_all(patients)
    except IntegrationError as exc:
        logger.error("full spreadsheet sync failed", extra={"error": exc.detail})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sync to Google Sheets",
        ) from exc
    return {
        "success": True,
        "count": count,
        "method": sheets.method.value,
        "message": f"Synced {count} patients to Google Sheets",
    }


@app.get("/api/today-summary")
def today_summary(db: Session = Depends(get_db)) -> dict[str, int]:
    """Count and total of patients registered today."""

    return todays_summary(db).model_dump()


@app.post("/api/send-daily-summary")
def send_daily_summary_endpoint(
    db: Session = Depends(get_db),
    integrations: Integrations = Depends(get_integrations),
) -> dict[str, Any]:
    """Send today's summary to the chat right away."""

    try:
        result = send_daily_summary(db, integrations.notifier.chat)
    except IntegrationError as exc:
        logger.error("manual daily summary failed", extra={"error": exc.detail})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send daily summary",
        ) from exc
    return {
        "success": True,
        "sent": result.sent,
        "count": result.count,
        "total_amount": result.total_amount,
    }
