from __future__ import annotations

import os
import logging
from typing import Any, Dict, Iterable, Mapping, Optional

import requests

from invoicebook.calculator import build_form_payload, derive, validate
from invoicebook.dashboard import sort_by_created
from invoicebook.errors import AuthenticationError
from invoicebook.models import (
    ATTACHMENT_TYPES,
    PROJECT_ROLES,
    Invoice,
    InvoiceForm,
    NewUser,
    Session,
    User,
)

DEFAULT_API_BASE = "http://localhost:8000/api/v1"
USERS_ENDPOINT = "/auth/register"
logger = logging.getLogger(__name__)

FileParts = Mapping[str, tuple[str, bytes]]


def _get_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value.strip() if value else None


def _api_base() -> str:
    return (_get_env("INVOICE_API_BASE") or DEFAULT_API_BASE).rstrip("/")


def _timeout() -> float:
    raw = _get_env("INVOICE_API_TIMEOUT")
    if not raw:
        return 30
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid INVOICE_API_TIMEOUT value: %s", raw)
        return 30


def require_token(session: Session) -> str:
    if not session.token:
        raise AuthenticationError("No authentication token found. Please log in again.")
    return session.token


def _headers(session: Session) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {require_token(session)}",
        "Accept": "application/json",
    }


def invoice_endpoint(role: Optional[str]) -> str:
    if role in ("Admin", "accountant"):
        return "/invoices"
    return "/user-invoices"


def _list_endpoint(role: Optional[str]) -> str:
    if role in ("Admin", "accountant"):
        return "/invoices"
    return "/user-invoices/project"


def _url(path: str) -> str:
    return f"{_api_base()}{path}"


def _items(data: Any) -> list[Dict[str, Any]]:
    if isinstance(data, dict):
        data = data.get("items") or data.get("data") or []
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def error_message(exc: Exception) -> str:
    """The backend's own message for a failed call, else the exception text."""
    response = getattr(exc, "response", None)
    if response is not None:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            detail = body.get("message") or body.get("detail") or body.get("error")
            if detail:
                return str(detail)
    return str(exc) or exc.__class__.__name__


def list_invoices(session: Session) -> list[Invoice]:
    resp = requests.get(
        _url(_list_endpoint(session.role)),
        headers=_headers(session),
        timeout=_timeout(),
    )
    resp.raise_for_status()
    invoices = [Invoice.model_validate(item) for item in _items(resp.json())]
    return sort_by_created(invoices)


def get_invoice(session: Session, invoice_id: str) -> Invoice:
    resp = requests.get(
        _url(f"{invoice_endpoint(session.role)}/{invoice_id}"),
        headers=_headers(session),
        timeout=_timeout(),
    )
    resp.raise_for_status()
    return Invoice.model_validate(resp.json())


def _created_id(resp: requests.Response) -> Optional[str]:
    try:
        data = resp.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    for source in (data, data.get("invoice") or {}, data.get("data") or {}):
        if isinstance(source, dict) and source.get("id") is not None:
            return str(source["id"])
    return None


def _multipart_files(files: Optional[FileParts]) -> Optional[list[tuple[str, tuple[str, bytes]]]]:
    if not files:
        return None
    parts = []
    for name, (filename, content) in files.items():
        if name not in ATTACHMENT_TYPES:
            raise ValueError(f"Unknown attachment type: {name}")
        parts.append((name, (filename, content)))
    return parts


def _multipart_parts(
    payload: Mapping[str, Any], files: Optional[FileParts]
) -> list[tuple[str, Any]]:
    # Plain fields go out as filename-less parts so the body is always multipart.
    parts: list[tuple[str, Any]] = []
    for key, value in payload.items():
        if value is None:
            continue
        values = value if isinstance(value, list) else [value]
        parts.extend((key, (None, str(item))) for item in values)
    parts.extend(_multipart_files(files) or [])
    return parts


def create_invoice(
    session: Session, payload: Mapping[str, Any], files: Optional[FileParts] = None
) -> Optional[str]:
    parts = _multipart_parts(payload, files)
    resp = requests.post(
        _url(invoice_endpoint(session.role)),
        headers=_headers(session),
        files=parts,
        timeout=_timeout(),
    )
    resp.raise_for_status()
    return _created_id(resp)


def update_invoice(
    session: Session,
    invoice_id: str,
    payload: Mapping[str, Any],
    files: Optional[FileParts] = None,
) -> Dict[str, Any]:
    parts = _multipart_parts(payload, files)
    resp = requests.put(
        _url(f"{invoice_endpoint(session.role)}/{invoice_id}"),
        headers=_headers(session),
        files=parts,
        timeout=_timeout(),
    )
    resp.raise_for_status()
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def delete_invoice(session: Session, invoice_id: str) -> None:
    resp = requests.delete(
        _url(f"{invoice_endpoint(session.role)}/{invoice_id}"),
        headers=_headers(session),
        timeout=_timeout(),
    )
    resp.raise_for_status()


def delete_invoices(session: Session, invoice_ids: Iterable[str]) -> list[str]:
    deleted: list[str] = []
    for invoice_id in invoice_ids:
        delete_invoice(session, invoice_id)
        deleted.append(invoice_id)
    return deleted


def remove_file(session: Session, invoice_id: str, file_type: str) -> None:
    if file_type not in ATTACHMENT_TYPES:
        raise ValueError(f"Unknown attachment type: {file_type}")
    resp = requests.delete(
        _url(f"{invoice_endpoint(session.role)}/{invoice_id}/file"),
        headers=_headers(session),
        params={"type": file_type},
        timeout=_timeout(),
    )
    resp.raise_for_status()


def fetch_current_user(session: Session) -> Dict[str, Any]:
    resp = requests.get(
        _url("/auth/me"),
        headers=_headers(session),
        timeout=_timeout(),
    )
    resp.raise_for_status()
    data = resp.json()
    return data if isinstance(data, dict) else {}


def list_users(session: Session) -> list[User]:
    resp = requests.get(
        _url(USERS_ENDPOINT),
        headers=_headers(session),
        timeout=_timeout(),
    )
    resp.raise_for_status()
    return [User.model_validate(item) for item in _items(resp.json())]


def create_user(session: Session, user: NewUser) -> None:
    resp = requests.post(
        _url(USERS_ENDPOINT),
        headers=_headers(session),
        json=user.model_dump(),
        timeout=_timeout(),
    )
    resp.raise_for_status()
    logger.info("User created", extra={"email": user.email})


def update_project_role(session: Session, user_id: str, project_role: str) -> None:
    if project_role not in PROJECT_ROLES:
        raise ValueError("Invalid project role")
    resp = requests.put(
        _url(f"{USERS_ENDPOINT}/{user_id}"),
        headers=_headers(session),
        json={"project_role": project_role},
        timeout=_timeout(),
    )
    resp.raise_for_status()


def delete_user(session: Session, user_id: str) -> None:
    resp = requests.delete(
        _url(f"{USERS_ENDPOINT}/{user_id}"),
        headers=_headers(session),
        timeout=_timeout(),
    )
    resp.raise_for_status()


def submit_invoice(
    session: Session,
    form: InvoiceForm,
    files: Optional[FileParts] = None,
    invoice_id: Optional[str] = None,
    existing: Optional[Iterable[Invoice]] = None,
) -> Optional[str]:
    """Validate a form strictly, then create or update the invoice."""
    require_token(session)
    derived = derive(form)
    validate(form, derived, mode="strict", existing=existing, invoice_id=invoice_id)
    payload = build_form_payload(form, derived)

    if invoice_id:
        update_invoice(session, invoice_id, payload, files)
        logger.info("Invoice updated", extra={"invoice_id": invoice_id})
        return invoice_id

    created = create_invoice(session, payload, files)
    logger.info("Invoice submitted", extra={"invoice_id": created})
    return created
