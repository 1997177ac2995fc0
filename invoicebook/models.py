# invoicebook/models.py
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from invoicebook.parse_utils import floor_display, to_amount, to_date


InvoiceStatus = Literal["Paid", "Under process", "Credit Note Issued", "Cancelled"]
Role = Literal["Admin", "accountant", "user"]

STATUSES: tuple[str, ...] = ("Paid", "Under process", "Credit Note Issued", "Cancelled")
TERMINAL_STATUSES = frozenset({"Credit Note Issued", "Cancelled"})
GST_OPTIONS: tuple[str, ...] = ("0%", "5%", "12%", "18%")

DEDUCTION_FIELDS: tuple[str, ...] = (
    "retention",
    "gst_withheld",
    "tds",
    "gst_tds",
    "bocw",
    "low_depth_deduction",
    "ld",
    "sla_penalty",
    "penalty",
    "other_deduction",
)

ATTACHMENT_TYPES: tuple[str, ...] = ("invoiceCopy", "proofOfSubmission", "supportingDocs")

PROJECT_ROLES: tuple[str, ...] = ("NFS", "GAIL", "BGCL", "STP", "BHARAT NET", "NFS AMC")

_EMAIL_RE = re.compile(r"^\S+@\S+$")


def _as_project_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.strip()
        return [value] if value else []
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    return [str(value)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Invoice(_CamelModel):
    id: Optional[str] = None

    project: list[str] = []
    state: Optional[str] = None
    mybill_category: Optional[str] = None
    mode_of_project: Optional[str] = None
    milestone: Optional[str] = None
    invoice_number: str = ""

    invoice_date: Optional[date] = None
    submission_date: Optional[date] = None
    payment_date: Optional[date] = None

    invoice_basic_amount: float = 0.0
    gst_percentage: Optional[str] = None
    invoice_gst_amount: float = 0.0
    total_amount: float = 0.0

    retention: float = 0.0
    gst_withheld: float = 0.0
    tds: float = 0.0
    gst_tds: float = 0.0
    bocw: float = 0.0
    low_depth_deduction: float = 0.0
    ld: float = 0.0
    sla_penalty: float = 0.0
    penalty: float = 0.0
    other_deduction: float = 0.0

    total_deduction: float = 0.0
    net_payable: float = 0.0
    balance: float = 0.0
    passed_amount_by_client: float = 0.0
    amount_paid_by_client: float = 0.0

    status: Optional[str] = None

    invoice_copy_path: Optional[str] = Field(default=None, alias="invoice_copy_path")
    proof_of_submission_path: Optional[str] = Field(default=None, alias="proof_of_submission_path")
    supporting_docs_path: Optional[str] = Field(default=None, alias="supporting_docs_path")

    remarks: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Any:
        return None if value is None else str(value)

    @field_validator("project", mode="before")
    @classmethod
    def _project_list(cls, value: Any) -> list[str]:
        return _as_project_list(value)

    @field_validator(
        "invoice_basic_amount",
        "invoice_gst_amount",
        "total_amount",
        *DEDUCTION_FIELDS,
        "total_deduction",
        "net_payable",
        "balance",
        "passed_amount_by_client",
        "amount_paid_by_client",
        mode="before",
    )
    @classmethod
    def _lenient_amount(cls, value: Any) -> float:
        return to_amount(value)

    @field_validator("invoice_date", "submission_date", "payment_date", mode="before")
    @classmethod
    def _calendar_day(cls, value: Any) -> Optional[date]:
        return to_date(value)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _optional_timestamp(cls, value: Any) -> Any:
        return value or None

    @field_validator("invoice_number", "remarks", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    def project_label(self) -> str:
        return ", ".join(self.project)

    def has_project(self, name: str) -> bool:
        target = name.lower()
        return any(p.lower() == target for p in self.project)

    def deductions(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in DEDUCTION_FIELDS}


class InvoiceForm(_CamelModel):
    """Raw form input; numbers stay empty (None) until the user types them."""

    project: list[str] = []
    mode_of_project: Optional[str] = None
    state: Optional[str] = None
    mybill_category: Optional[str] = None
    milestone: Optional[str] = None
    invoice_number: str = ""

    invoice_date: Optional[date] = None
    submission_date: Optional[date] = None
    payment_date: Optional[date] = None

    basic_amount: Optional[float] = None
    gst_percentage: Optional[str] = None
    passed_amount: Optional[float] = None

    retention: Optional[float] = None
    gst_withheld: Optional[float] = None
    tds: Optional[float] = None
    gst_tds: Optional[float] = None
    bocw: Optional[float] = None
    low_depth_deduction: Optional[float] = None
    ld: Optional[float] = None
    sla_penalty: Optional[float] = None
    penalty: Optional[float] = None
    other_deduction: Optional[float] = None

    status: Optional[str] = "Under process"
    amount_paid: Optional[float] = None
    remarks: str = ""

    # Either a new upload's filename or the existing server path.
    invoice_copy: Optional[str] = None
    proof_of_submission: Optional[str] = None
    supporting_docs: Optional[str] = None

    @field_validator("project", mode="before")
    @classmethod
    def _project_list(cls, value: Any) -> list[str]:
        return _as_project_list(value)

    @field_validator(
        "basic_amount",
        "passed_amount",
        "amount_paid",
        *DEDUCTION_FIELDS,
        mode="before",
    )
    @classmethod
    def _empty_number(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator(
        "invoice_date",
        "submission_date",
        "payment_date",
        "mode_of_project",
        "state",
        "mybill_category",
        "milestone",
        "gst_percentage",
        "status",
        "invoice_copy",
        "proof_of_submission",
        "supporting_docs",
        mode="before",
    )
    @classmethod
    def _empty_text(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("invoice_number", "remarks", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @classmethod
    def from_invoice(cls, invoice: Invoice) -> "InvoiceForm":
        """Prefill an edit form from a stored invoice."""

        def _number(value: float) -> Optional[float]:
            return value or None

        return cls(
            project=invoice.project,
            mode_of_project=invoice.mode_of_project,
            state=invoice.state,
            mybill_category=invoice.mybill_category,
            milestone=invoice.milestone,
            invoice_number=invoice.invoice_number,
            invoice_date=invoice.invoice_date,
            submission_date=invoice.submission_date,
            payment_date=invoice.payment_date,
            basic_amount=_number(invoice.invoice_basic_amount),
            gst_percentage=invoice.gst_percentage,
            passed_amount=_number(invoice.passed_amount_by_client),
            status=invoice.status,
            amount_paid=_number(invoice.amount_paid_by_client),
            remarks=invoice.remarks,
            invoice_copy=invoice.invoice_copy_path,
            proof_of_submission=invoice.proof_of_submission_path,
            supporting_docs=invoice.supporting_docs_path,
            **{name: _number(value) for name, value in invoice.deductions().items()},
        )


class DerivedAmounts(_CamelModel):
    invoice_gst_amount: float
    total_amount: float
    total_deduction: float
    net_payable: float
    effective_amount_paid: float
    balance: float

    def displayed(self) -> "DerivedAmounts":
        return DerivedAmounts(
            **{name: floor_display(value) for name, value in self.model_dump().items()}
        )


class Session(BaseModel):
    token: Optional[str] = None
    user_id: Optional[str] = None
    role: Optional[Role] = None
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "Admin"


class ImportReport(BaseModel):
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = []
    refreshed: bool = False
    invoices: list[Invoice] = []

    @property
    def message(self) -> str:
        if self.failed:
            return f"{self.failed} row(s) failed"
        return f"Imported {self.succeeded} invoice(s) successfully"


class User(BaseModel):
    """A login as listed by ``/auth/register``; the wire uses snake_case."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    user_name: str = ""
    email: str = ""
    project_role: str = ""
    role: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        role = data.get("role") or data.get("user_role")
        if not role and (data.get("is_admin") or data.get("isAdmin") or data.get("admin")):
            role = "admin"
        data["role"] = str(role) if role else None
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        for key in ("user_name", "email", "project_role"):
            if data.get(key) is None:
                data[key] = ""
        return data

    def matches(self, search: str) -> bool:
        needle = (search or "").strip().lower()
        return not needle or needle in self.user_name.lower() or needle in self.email.lower()


class NewUser(BaseModel):
    name: str
    email: str
    password: str

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Name too short")
        return value

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        value = value.strip()
        if not _EMAIL_RE.match(value):
            raise ValueError("Invalid email")
        return value

    @field_validator("password")
    @classmethod
    def _password(cls, value: str) -> str:
        if len(value) < 6:
            raise ValueError("Password must be at least 6 chars")
        return value


class ProjectRoleUpdate(_CamelModel):
    project_role: str
