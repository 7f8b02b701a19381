"""Declarative schema of the Non-Traffic Citation application document.

Every field of the document is declared here exactly once, together with its
default value, its format constraint and the metadata the presentation layer
needs to render it. Field paths are dotted (``section.field``); the only
root-level field is ``citationNumber``.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..utils.config import DEFAULT_FORM_VERSION, FormConfig

ROOT_SECTION = ""

SEX_OPTIONS: List[Tuple[str, str]] = [("M", "Male"), ("F", "Female")]

COPY_TYPE_OPTIONS: List[Tuple[str, str]] = [
    ("ORIGINAL", "Original"),
    ("DEFENDANT", "Defendant"),
    ("PUBLIC_ACCESS_COPY", "Public Access Copy"),
    ("POLICE", "Police"),
]


@dataclass(frozen=True)
class ExactLength:
    """Non-empty value must have exactly ``length`` characters."""
    length: int
    message: str

    def check(self, value: str) -> Optional[str]:
        return None if len(value) == self.length else self.message


@dataclass(frozen=True)
class Pattern:
    """Non-empty value must fully match ``regex``."""
    regex: str
    message: str

    def check(self, value: str) -> Optional[str]:
        return None if re.fullmatch(self.regex, value) else self.message


@dataclass(frozen=True)
class OneOf:
    """Non-empty value must be one of a closed set of tokens."""
    values: Tuple[str, ...]
    message: str

    def check(self, value: str) -> Optional[str]:
        return None if value in self.values else self.message


STATE_CODE = ExactLength(2, "State must be 2 characters")
ZIP_CODE = Pattern(r"\d{5}(-\d{4})?", "Invalid zip code")
SSN = Pattern(r"\d{3}-\d{2}-\d{4}", "SSN format: XXX-XX-XXXX")
SEX = OneOf(("M", "F"), "Sex must be one of: M, F")
COPY_TYPE = OneOf(
    tuple(value for value, _ in COPY_TYPE_OPTIONS),
    "Copy type must be one of: ORIGINAL, DEFENDANT, PUBLIC_ACCESS_COPY, POLICE"
)


@dataclass(frozen=True)
class FieldSpec:
    """
    Declaration of a single document field.

    Attributes:
        path: Dotted field path, e.g. "defendant.state"
        label: Display label
        value_type: "text" or "bool"
        input_type: Rendering hint (text, textarea, date, time, tel, number,
            checkbox, select)
        placeholder: Placeholder text shown in empty inputs
        default: Default value of a fresh document
        constraint: Format constraint applied to non-empty values
        options: (value, label) pairs for select inputs
    """
    path: str
    label: str
    value_type: str = "text"
    input_type: str = "text"
    placeholder: str = ""
    default: Any = ""
    constraint: Optional[Any] = None
    options: Tuple[Tuple[str, str], ...] = ()

    @property
    def section(self) -> str:
        return self.path.split(".", 1)[0] if "." in self.path else ROOT_SECTION

    @property
    def name(self) -> str:
        return self.path.rsplit(".", 1)[-1]


def _text(path, label, placeholder="", input_type="text", constraint=None, default=""):
    return FieldSpec(
        path=path,
        label=label,
        input_type=input_type,
        placeholder=placeholder,
        default=default,
        constraint=constraint,
    )


def _flag(path, label):
    return FieldSpec(path=path, label=label, value_type="bool", input_type="checkbox", default=False)


def _select(path, label, options, constraint, placeholder):
    return FieldSpec(
        path=path,
        label=label,
        input_type="select",
        placeholder=placeholder,
        constraint=constraint,
        options=tuple(options),
    )


def _person_fields(section: str) -> List[FieldSpec]:
    return [
        _text(f"{section}.firstName", "First Name", "First name"),
        _text(f"{section}.middleName", "Middle Name", "Middle name"),
        _text(f"{section}.lastName", "Last Name", "Last name"),
        _text(f"{section}.suffix", "Suffix", "Jr., Sr., III"),
    ]


class FormSchema:
    """
    Ordered collection of field declarations.

    Provides lookup by path, per-section grouping and construction of the
    default document tree.
    """

    def __init__(self, fields: List[FieldSpec]):
        self.fields: List[FieldSpec] = list(fields)
        self._by_path: Dict[str, FieldSpec] = {}
        for spec in self.fields:
            if spec.path in self._by_path:
                raise ValueError(f"Duplicate field path: {spec.path}")
            self._by_path[spec.path] = spec

    def __contains__(self, path: str) -> bool:
        return path in self._by_path

    def __len__(self) -> int:
        return len(self.fields)

    @property
    def paths(self) -> List[str]:
        return [spec.path for spec in self.fields]

    @property
    def sections(self) -> List[str]:
        """Named sections (the root section excluded) in declaration order."""
        seen: List[str] = []
        for spec in self.fields:
            if spec.section and spec.section not in seen:
                seen.append(spec.section)
        return seen

    def field(self, path: str) -> FieldSpec:
        """
        Look up a field declaration.

        Raises:
            KeyError: If the schema does not declare the path
        """
        return self._by_path[path]

    def defaults(self) -> Dict[str, Any]:
        """
        Build the nested default document.

        Returns:
            Dict with root-level fields and one dict per section
        """
        tree: Dict[str, Any] = {}
        for spec in self.fields:
            if spec.section == ROOT_SECTION:
                tree[spec.name] = spec.default
            else:
                tree.setdefault(spec.section, {})[spec.name] = spec.default
        return tree


def build_schema(form_config: Optional[FormConfig] = None) -> FormSchema:
    """
    Build the citation application schema.

    Args:
        form_config: Optional overrides for the pre-filled form version label
            and the default JCP/ATJ/CJEA/OAG fee

    Returns:
        FormSchema for the whole application document
    """
    form_config = form_config or FormConfig()

    fields: List[FieldSpec] = [
        _text("citationNumber", "Citation Number", "Enter citation number"),

        _text("court.magisterialDistrictCourt", "Magisterial District Court", "Enter court name"),
        _text("court.docketNumber", "Docket Number", "Enter docket number"),
        _text("court.address", "Court Address", "Enter court address"),
        _text("court.city", "City", "City"),
        _text("court.state", "State", "PA", constraint=STATE_CODE),
        _text("court.zipCode", "Zip Code", "12345", constraint=ZIP_CODE),

        _text("case.socialSecurityNumber", "Social Security Number", "XXX-XX-XXXX", constraint=SSN),
        _text("case.incidentCadCaseNumber", "Incident/CAD Case Number", "Enter incident number"),
        _text("case.caseInstitutedBy", "Case Instituted By", "Enter institution name"),

        *_person_fields("defendant"),
        _text("defendant.driversNumber", "Driver's License Number", "License number"),
        _text("defendant.driversLicenseState", "License State", "PA", constraint=STATE_CODE),
        _text("defendant.streetAddress", "Street Address", "Street address"),
        _text("defendant.city", "City", "City"),
        _text("defendant.state", "State", "PA", constraint=STATE_CODE),
        _text("defendant.zipCode", "Zip Code", "12345", constraint=ZIP_CODE),
        _text("defendant.race", "Race", "Race"),
        _text("defendant.ethnicity", "Ethnicity", "Ethnicity"),
        _select("defendant.sex", "Sex", SEX_OPTIONS, SEX, "Select sex"),
        _text("defendant.dateOfBirth", "Date of Birth", input_type="date"),
        _text("defendant.residentStatus", "Resident Status", "Resident status"),
        _text("defendant.signature", "Signature", "Type name for signature"),
        _text("defendant.signatureDate", "Signature Date", input_type="date"),

        _flag("juvenile.isJuvenile", "Is Juvenile"),
        _flag("juvenile.parentsNotified", "Parents Notified"),
        _text("juvenile.parentFirstName", "Parent First Name", "Parent first name"),
        _text("juvenile.parentLastName", "Parent Last Name", "Parent last name"),
        _text("juvenile.dateNotified", "Date Notified", input_type="date"),
        _text("juvenile.timeNotified", "Time Notified", input_type="time"),

        _text("charge.charge", "Charge", "Enter charge"),
        _text("charge.natureOfOffense", "Nature of Offense", "Describe the offense", input_type="textarea"),
        _text("charge.paCode", "PA Code", "PA code"),
        _text("charge.statuteOrdinance", "Statute/Ordinance", "Statute"),
        _text("charge.section", "Section", "Section"),
        _text("charge.subsection", "Subsection", "Subsection"),

        _text("financial.fine", "Fine ($)", "0.00", input_type="number"),
        _text("financial.costs", "Costs ($)", "0.00", input_type="number"),
        _text(
            "financial.jcpAtjCjeaOag", "JCP/ATJ/CJEA/OAG ($)", "40.25",
            input_type="number", default=form_config.default_fee
        ),
        _text("financial.totalDue", "Total Due ($)", "0.00", input_type="number"),

        _text("offense.offenseDate", "Offense Date", input_type="date"),
        _text("offense.offenseTime", "Offense Time", input_type="time"),
        _text("offense.offenseDay", "Day of Week", "Monday"),
        _flag("offense.labServicesRequired", "Lab Services Required"),
        _text("offense.offenseCode", "Offense Code", "Offense code"),
        _text("offense.propertyRecordNumber", "Property Record Number", "Property record number"),
        _text("offense.systemsCode", "Systems Code", "Systems code"),

        _text("location.county", "County", "County name"),
        _text("location.countyCode", "County Code", "County code"),
        _text("location.townshipBoroughCity", "Township/Borough/City", "Township/Borough/City"),
        _text("location.code", "Location Code", "Location code"),
        _text("location.zone", "Zone", "Zone"),
        _text("location.initialReport", "Initial Report", "Initial report reference"),
        _text("location.attnLce", "Attn LCE", "Attention LCE"),
        _flag("location.militaryService", "Military Service"),
        _text("location.location", "Location Description", "Detailed location description", input_type="textarea"),
        _text("location.stationAddress", "Station Address", "Station address"),

        _text("officer.signature", "Officer Signature", "Type name for signature"),
        _text("officer.badgeNumber", "Badge Number", "Badge number"),
        _text("officer.oriNumber", "ORI Number", "ORI number"),
        _text("officer.phoneNumber", "Phone Number", "(555) 555-5555", input_type="tel"),
        _text("officer.officerId", "Officer ID", "Officer ID"),
        _text("officer.dateFiledOnInfoReceived", "Date Filed/Info Received", input_type="date"),

        *_person_fields("victim"),
        _text("victim.dateOfBirth", "Date of Birth", input_type="date"),
        _select("victim.sex", "Sex", SEX_OPTIONS, SEX, "Select sex"),
        _text("victim.race", "Race", "Race"),
        _text("victim.ethnicity", "Ethnicity", "Ethnicity"),
        _text("victim.address", "Address", "Address"),
        _text("victim.phoneNumber", "Phone Number", "(555) 555-5555", input_type="tel"),

        _text(
            "additional.confidentialInformation", "Confidential Information",
            "Enter confidential information", input_type="textarea"
        ),
        _text(
            "additional.remarksSubpoenaList", "Remarks/Subpoena List",
            "Enter remarks and subpoena list", input_type="textarea"
        ),

        _text(
            "metadata.formVersion", "Form Version", DEFAULT_FORM_VERSION,
            default=form_config.version_label
        ),
        _select("metadata.copyType", "Copy Type", COPY_TYPE_OPTIONS, COPY_TYPE, "Select copy type"),
    ]

    return FormSchema(fields)


CITATION_SCHEMA = build_schema()
