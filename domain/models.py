# domain/models.py - Domain entities (dataclasses)
#
# Typed models for cross-layer data. Conversion from sqlite3.Row/dict
# happens at the repository boundary only.

from dataclasses import dataclass, field
from typing import Any, Optional


def _float_or_none(v: Any) -> Optional[float]:
    if v is None or v == "":
        return None
    return float(v)


def _format_number(v: Optional[float]) -> str:
    """Render a float for an edit field: 20.0 -> '20', 0.25 -> '0.25', None -> ''."""
    if v is None:
        return ""
    if float(v).is_integer():
        return str(int(v))
    return repr(float(v))


@dataclass
class Case:
    """A customer case: contact details plus the assessed machine/lubricant conditions."""

    id: str
    owner_id: str
    customer_name: str
    customer_address: Optional[str] = None
    customer_mobile: Optional[str] = None
    customer_email: Optional[str] = None
    machine_condition: str = "NORMAL"
    lubricant_condition: str = "NORMAL"
    recommendations: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "Case":
        """Build Case from sqlite3.Row or dict."""
        d = dict(row)
        return cls(
            id=d["id"],
            owner_id=d.get("owner_id") or "",
            customer_name=d.get("customer_name") or "",
            customer_address=d.get("customer_address"),
            customer_mobile=d.get("customer_mobile"),
            customer_email=d.get("customer_email"),
            machine_condition=d.get("machine_condition") or "NORMAL",
            lubricant_condition=d.get("lubricant_condition") or "NORMAL",
            recommendations=d.get("recommendations"),
            created_at=d.get("created_at"),
            updated_at=d.get("updated_at"),
        )

    def __str__(self) -> str:
        return f"id={self.id}, customer={self.customer_name}"


@dataclass
class TestResult:
    """One measured parameter of a test. status is derived, never edited."""

    __test__ = False  # not a pytest test class

    id: str
    case_test_id: str
    parameter_name: str
    actual_value: float
    lower_limit: Optional[float] = None
    upper_limit: Optional[float] = None
    unit: Optional[str] = None
    particle_size: Optional[str] = None
    status: str = "NORMAL"
    sort_order: int = 0
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "TestResult":
        d = dict(row)
        return cls(
            id=d["id"],
            case_test_id=d.get("case_test_id") or "",
            parameter_name=d.get("parameter_name") or "",
            actual_value=float(d["actual_value"]),
            lower_limit=_float_or_none(d.get("lower_limit")),
            upper_limit=_float_or_none(d.get("upper_limit")),
            unit=d.get("unit"),
            particle_size=d.get("particle_size"),
            status=d.get("status") or "NORMAL",
            sort_order=d.get("sort_order") or 0,
            created_at=d.get("created_at"),
        )


@dataclass
class CaseTest:
    """A lab test performed for a case, with its ordered results."""

    __test__ = False

    id: str
    case_id: str
    test_name: str
    image_url: Optional[str] = None
    image_comment: Optional[str] = None
    created_at: Optional[str] = None
    results: list[TestResult] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Any, results: Optional[list[TestResult]] = None) -> "CaseTest":
        d = dict(row)
        return cls(
            id=d["id"],
            case_id=d.get("case_id") or "",
            test_name=d.get("test_name") or "",
            image_url=d.get("image_url"),
            image_comment=d.get("image_comment"),
            created_at=d.get("created_at"),
            results=list(results or []),
        )


@dataclass
class CaseDetail:
    """Nested read of one case: case -> tests -> results."""

    case: Case
    tests: list[CaseTest] = field(default_factory=list)

    def all_results(self) -> list[TestResult]:
        return [r for t in self.tests for r in t.results]


@dataclass
class TemplateParameter:
    id: str
    template_id: str
    parameter_name: str
    lower_limit: Optional[float] = None
    upper_limit: Optional[float] = None
    unit: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "TemplateParameter":
        d = dict(row)
        return cls(
            id=d["id"],
            template_id=d.get("template_id") or "",
            parameter_name=d.get("parameter_name") or "",
            lower_limit=_float_or_none(d.get("lower_limit")),
            upper_limit=_float_or_none(d.get("upper_limit")),
            unit=d.get("unit"),
        )


@dataclass
class TestTemplate:
    """Reusable named parameter set (limits and units, no measurements)."""

    __test__ = False

    id: str
    owner_id: str
    test_name: str
    created_at: Optional[str] = None
    parameters: list[TemplateParameter] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Any, parameters: Optional[list[TemplateParameter]] = None) -> "TestTemplate":
        d = dict(row)
        return cls(
            id=d["id"],
            owner_id=d.get("owner_id") or "",
            test_name=d.get("test_name") or "",
            created_at=d.get("created_at"),
            parameters=list(parameters or []),
        )


DEFAULT_COMPANY_NAME = "Oil Analysis Lab"


@dataclass
class CompanySettings:
    """Company profile used to brand the report header/footer. One per owner."""

    owner_id: str
    company_name: str = DEFAULT_COMPANY_NAME
    logo_url: Optional[str] = None
    contact_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "CompanySettings":
        d = dict(row)
        return cls(
            owner_id=d.get("owner_id") or "",
            company_name=d.get("company_name") or DEFAULT_COMPANY_NAME,
            logo_url=d.get("logo_url"),
            contact_number=d.get("contact_number"),
            email=d.get("email"),
            address=d.get("address"),
            updated_at=d.get("updated_at"),
        )


@dataclass
class ParameterRow:
    """
    One editable parameter row as typed in the test form. All fields are
    strings; parsing happens in test_service before classification.
    """

    name: str = ""
    lower_limit: str = ""
    upper_limit: str = ""
    actual_value: str = ""
    unit: str = ""
    particle_size: str = ""

    @classmethod
    def from_result(cls, r: TestResult) -> "ParameterRow":
        return cls(
            name=r.parameter_name,
            lower_limit=_format_number(r.lower_limit),
            upper_limit=_format_number(r.upper_limit),
            actual_value=_format_number(r.actual_value),
            unit=r.unit or "",
            particle_size=r.particle_size or "",
        )

    @classmethod
    def from_template_parameter(cls, p: TemplateParameter) -> "ParameterRow":
        """Prefill from a template: limits and unit copied, measurement fields cleared."""
        return cls(
            name=p.parameter_name,
            lower_limit=_format_number(p.lower_limit),
            upper_limit=_format_number(p.upper_limit),
            unit=p.unit or "",
        )
