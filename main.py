from __future__ import annotations

import logging
import os
from datetime import date
from typing import Any, Callable, Dict, Literal, Optional, TypeVar

import requests
from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from pydantic import BaseModel, ValidationError

from invoicebook import api_client, dashboard
from invoicebook.calculator import derive, validate
from invoicebook.errors import AuthenticationError, ImportFileError, InvoiceValidationError
from invoicebook.models import (
    ImportReport,
    Invoice,
    InvoiceForm,
    NewUser,
    ProjectRoleUpdate,
    Session,
)
from invoicebook.normalizer import import_file
from invoicebook.parse_utils import format_money
from invoicebook.session import session_from_header
from invoicebook.spreadsheet import SUPPORTED_EXTENSIONS, export_filename, export_invoices


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("invoicebook")

APP_VERSION = os.getenv("APP_VERSION", "0.1.0")
MAX_UPLOAD_BYTES = os.getenv("MAX_UPLOAD_BYTES")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Multipart upload names and the form fields that hold the stored file names.
ATTACHMENT_FIELDS = {
    "invoiceCopy": "invoice_copy",
    "proofOfSubmission": "proof_of_submission",
    "supportingDocs": "supporting_docs",
}

T = TypeVar("T")

app = FastAPI()


class BatchDelete(BaseModel):
    ids: list[str]


def _max_upload_bytes() -> Optional[int]:
    if not MAX_UPLOAD_BYTES:
        return None
    try:
        return int(MAX_UPLOAD_BYTES)
    except ValueError:
        logger.warning("Invalid MAX_UPLOAD_BYTES value: %s", MAX_UPLOAD_BYTES)
        return None


def _session(request: Request) -> Session:
    try:
        return session_from_header(request.headers.get("authorization"))
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def _require_admin(session: Session) -> None:
    if not session.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")


def _backend(detail: str, call: Callable[..., T], *args: Any) -> T:
    """Run a backend call, turning transport and bad-payload failures into HTTP errors.

    A 4xx from the backend keeps its status and message; anything else is a 502.
    """
    try:
        return call(*args)
    except requests.HTTPError as exc:
        code = exc.response.status_code if exc.response is not None else None
        if code is not None and 400 <= code < 500:
            raise HTTPException(status_code=code, detail=api_client.error_message(exc)) from exc
        logger.exception("%s: %s", detail, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail) from exc
    except (requests.RequestException, ValidationError) as exc:
        logger.exception("%s: %s", detail, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail) from exc


def _fetch_invoices(session: Session) -> list[Invoice]:
    return _backend("Failed to fetch invoices. Please try again.", api_client.list_invoices, session)


def _parse_day(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{name} must be YYYY-MM-DD",
        ) from exc


def _filtered(
    session: Session,
    search: str,
    project: Optional[str],
    status_filter: Optional[str],
    state: Optional[str],
    bill_category: Optional[str],
    from_date: Optional[str],
    to_date: Optional[str],
) -> list[Invoice]:
    start = _parse_day(from_date, "from_date")
    end = _parse_day(to_date, "to_date")
    return dashboard.filter_invoices(
        _fetch_invoices(session),
        search=search,
        project=project,
        status=status_filter,
        state=state,
        bill_category=bill_category,
        date_range=(start, end) if start and end else None,
    )


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/version")
async def version() -> Dict[str, Any]:
    return {"status": "ok", "app_version": APP_VERSION}


@app.post("/calculate")
async def calculate(form: InvoiceForm) -> Dict[str, Any]:
    derived = derive(form)
    return {
        "derived": derived.model_dump(by_alias=True),
        "displayed": derived.displayed().model_dump(by_alias=True),
    }


@app.post("/validate")
async def validate_form(
    form: InvoiceForm, mode: Literal["strict", "lenient"] = "strict"
) -> Dict[str, Any]:
    try:
        issues = validate(form, mode=mode)
    except InvoiceValidationError as exc:
        return {"status": "rejected", "mode": mode, "issues": exc.issues}
    return {"status": "ok", "mode": mode, "issues": issues}


@app.post("/invoices/import")
async def import_invoices(request: Request, file: UploadFile = File(...)) -> ImportReport:
    session = _session(request)
    _require_admin(session)

    filename = file.filename or ""
    if not filename.lower().endswith(SUPPORTED_EXTENSIONS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please upload a .csv or .xlsx file",
        )

    content = await file.read()
    limit = _max_upload_bytes()
    if limit is not None and len(content) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload too large: {len(content)} bytes (max {limit})",
        )

    try:
        report = await run_in_threadpool(import_file, filename, content, session)
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    except ImportFileError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Import failed: {exc}") from exc

    logger.info(
        "Spreadsheet imported",
        extra={"file_name": filename, "succeeded": report.succeeded, "failed": report.failed},
    )
    return report


@app.get("/invoices/export")
def export(
    request: Request,
    search: str = "",
    project: Optional[str] = None,
    status_filter: Optional[str] = None,
    state: Optional[str] = None,
    bill_category: Optional[str] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
) -> Response:
    session = _session(request)
    invoices = _filtered(
        session, search, project, status_filter, state, bill_category, from_date, to_date
    )
    filename = export_filename()
    logger.info("Exporting invoices", extra={"count": len(invoices)})
    return Response(
        content=export_invoices(invoices),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.get("/dashboard/summary")
def dashboard_summary(
    request: Request,
    search: str = "",
    project: Optional[str] = None,
    status_filter: Optional[str] = None,
    state: Optional[str] = None,
    bill_category: Optional[str] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
) -> Dict[str, Any]:
    session = _session(request)
    invoices = _filtered(
        session, search, project, status_filter, state, bill_category, from_date, to_date
    )
    return {
        "status": "ok",
        "projects": dashboard.project_options(invoices),
        "totals": dashboard.totals(invoices),
        "byProject": dashboard.group_totals(invoices, "project"),
        "byState": dashboard.group_totals(invoices, "state"),
        "byStatus": dashboard.group_totals(invoices, "status"),
        "byBillCategory": dashboard.group_totals(invoices, "mybill_category"),
        "deductions": dashboard.deduction_breakdown(invoices),
        "gst": dashboard.gst_summary(invoices),
        "overdue": dashboard.overdue_aging(invoices, project=project),
    }


@app.get("/dashboard/overdue")
def dashboard_overdue(
    request: Request,
    timeframe: str = "6m",
    date_field: dashboard.DateField = "invoice_date",
    project: Optional[str] = None,
    search: str = "",
) -> Dict[str, Any]:
    session = _session(request)
    overdue = dashboard.overdue_invoices(
        _fetch_invoices(session),
        timeframe=timeframe,
        date_field=date_field,
        project=project,
        search=search,
    )
    return {
        "status": "ok",
        "count": len(overdue),
        "invoices": [
            {
                "id": inv.id,
                "invoiceNumber": inv.invoice_number,
                "project": inv.project_label(),
                "invoiceDate": inv.invoice_date.isoformat() if inv.invoice_date else None,
                "submissionDate": inv.submission_date.isoformat() if inv.submission_date else None,
                "netPayable": format_money(inv.net_payable),
                "balance": format_money(inv.balance),
            }
            for inv in overdue
        ],
    }


@app.get("/me")
def current_user(request: Request) -> Dict[str, Any]:
    session = _session(request)
    user = _backend("Failed to load the current user", api_client.fetch_current_user, session)
    return {"status": "ok", "user": user, "role": session.role, "isAdmin": session.is_admin}


# ---------------------------------------------------------------------------
# Invoice lifecycle
# ---------------------------------------------------------------------------

@app.get("/invoices/{invoice_id}")
def read_invoice(request: Request, invoice_id: str) -> Dict[str, Any]:
    session = _session(request)
    invoice = _backend("Failed to load invoice", api_client.get_invoice, session, invoice_id)
    form = InvoiceForm.from_invoice(invoice)
    return {
        "status": "ok",
        "invoice": invoice.model_dump(by_alias=True, mode="json"),
        "form": form.model_dump(by_alias=True, mode="json"),
    }


async def _submit(
    request: Request,
    form_json: str,
    uploads: Dict[str, Optional[UploadFile]],
    invoice_id: Optional[str] = None,
) -> Optional[str]:
    session = _session(request)
    try:
        form = InvoiceForm.model_validate_json(form_json)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid invoice form: {exc.error_count()} error(s)",
        ) from exc

    files: Dict[str, tuple[str, bytes]] = {}
    names: Dict[str, str] = {}
    for file_type, upload in uploads.items():
        if upload is None or not upload.filename:
            continue
        files[file_type] = (upload.filename, await upload.read())
        names[ATTACHMENT_FIELDS[file_type]] = upload.filename
    if names:
        form = form.model_copy(update=names)

    existing = await run_in_threadpool(_fetch_invoices, session)
    try:
        return await run_in_threadpool(
            _backend,
            "Failed to save invoice",
            api_client.submit_invoice,
            session,
            form,
            files or None,
            invoice_id,
            existing,
        )
    except InvoiceValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.issues) from exc


@app.post("/invoices")
async def create_invoice(
    request: Request,
    form: str = Form(...),
    invoice_copy: Optional[UploadFile] = File(None, alias="invoiceCopy"),
    proof_of_submission: Optional[UploadFile] = File(None, alias="proofOfSubmission"),
    supporting_docs: Optional[UploadFile] = File(None, alias="supportingDocs"),
) -> Dict[str, Any]:
    uploads = {
        "invoiceCopy": invoice_copy,
        "proofOfSubmission": proof_of_submission,
        "supportingDocs": supporting_docs,
    }
    created = await _submit(request, form, uploads)
    return {"status": "ok", "id": created}


@app.put("/invoices/{invoice_id}")
async def update_invoice(
    request: Request,
    invoice_id: str,
    form: str = Form(...),
    invoice_copy: Optional[UploadFile] = File(None, alias="invoiceCopy"),
    proof_of_submission: Optional[UploadFile] = File(None, alias="proofOfSubmission"),
    supporting_docs: Optional[UploadFile] = File(None, alias="supportingDocs"),
) -> Dict[str, Any]:
    uploads = {
        "invoiceCopy": invoice_copy,
        "proofOfSubmission": proof_of_submission,
        "supportingDocs": supporting_docs,
    }
    updated = await _submit(request, form, uploads, invoice_id=invoice_id)
    return {"status": "ok", "id": updated}


@app.delete("/invoices/{invoice_id}")
def delete_invoice(request: Request, invoice_id: str) -> Dict[str, Any]:
    session = _session(request)
    _backend("Failed to delete invoice", api_client.delete_invoice, session, invoice_id)
    logger.info("Invoice deleted", extra={"invoice_id": invoice_id})
    return {"status": "ok", "id": invoice_id}


@app.post("/invoices/batch-delete")
def batch_delete(request: Request, body: BatchDelete) -> Dict[str, Any]:
    session = _session(request)
    _require_admin(session)
    deleted = _backend("Failed to delete invoices", api_client.delete_invoices, session, body.ids)
    logger.info("Invoices deleted", extra={"count": len(deleted)})
    return {"status": "ok", "deleted": deleted}


@app.delete("/invoices/{invoice_id}/file")
def remove_file(
    request: Request, invoice_id: str, file_type: str = Query(..., alias="type")
) -> Dict[str, Any]:
    session = _session(request)
    try:
        _backend("Failed to remove file", api_client.remove_file, session, invoice_id, file_type)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {"status": "ok", "id": invoice_id, "type": file_type}


# ---------------------------------------------------------------------------
# User management
# ---------------------------------------------------------------------------

@app.get("/users")
def list_users(request: Request, search: str = "") -> Dict[str, Any]:
    session = _session(request)
    _require_admin(session)
    users = _backend("Failed to fetch users", api_client.list_users, session)
    matching = [user.model_dump() for user in users if user.matches(search)]
    return {"status": "ok", "count": len(matching), "users": matching}


@app.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(request: Request, user: NewUser) -> Dict[str, Any]:
    session = _session(request)
    _require_admin(session)
    _backend("Failed to create user", api_client.create_user, session, user)
    return {"status": "ok", "email": user.email}


@app.put("/users/{user_id}/project-role")
def update_project_role(request: Request, user_id: str, body: ProjectRoleUpdate) -> Dict[str, Any]:
    session = _session(request)
    _require_admin(session)
    try:
        _backend(
            "Failed to update project role",
            api_client.update_project_role,
            session,
            user_id,
            body.project_role,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {"status": "ok", "id": user_id, "projectRole": body.project_role}


@app.delete("/users/{user_id}")
def delete_user(request: Request, user_id: str) -> Dict[str, Any]:
    session = _session(request)
    _require_admin(session)
    _backend("Failed to delete user", api_client.delete_user, session, user_id)
    return {"status": "ok", "id": user_id}
