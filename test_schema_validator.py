"""Tests for the citation form schema and validator."""

import pytest

from citation_intake.models import ApplicationDocument
from citation_intake.utils.config import FormConfig
from citation_intake.validation import CITATION_SCHEMA, SchemaValidator, build_schema


@pytest.fixture
def validator():
    return SchemaValidator(CITATION_SCHEMA)


def test_defaults():
    """Test the pre-filled values of a fresh document."""
    defaults = CITATION_SCHEMA.defaults()

    assert defaults["financial"]["jcpAtjCjeaOag"] == "40.25"
    assert defaults["metadata"]["formVersion"] == "AOPC 407-95 (Rev. 11/2022)"
    assert defaults["juvenile"]["isJuvenile"] is False
    assert defaults["defendant"]["firstName"] == ""
    assert defaults["citationNumber"] == ""


def test_sections_in_form_order():
    assert CITATION_SCHEMA.sections == [
        "court", "case", "defendant", "juvenile", "charge", "financial",
        "offense", "location", "officer", "victim", "additional", "metadata",
    ]


def test_form_config_overrides_prefilled_values():
    schema = build_schema(FormConfig(version_label="AOPC 407-95 (Rev. 01/2026)", default_fee="42.00"))

    assert schema.field("financial.jcpAtjCjeaOag").default == "42.00"
    assert schema.field("metadata.formVersion").default == "AOPC 407-95 (Rev. 01/2026)"


def test_empty_document_is_valid(validator):
    result = validator.validate(ApplicationDocument.empty())

    assert result.valid
    assert result.errors == {}


def test_empty_values_always_pass(validator):
    """Empty or absent values pass even where a constraint is declared."""
    for path in ("court.state", "court.zipCode", "case.socialSecurityNumber", "defendant.sex", "metadata.copyType"):
        assert validator.validate_field(path, "") is None
        assert validator.validate_field(path, None) is None


@pytest.mark.parametrize("path, value, message", [
    ("court.state", "Pennsylvania", "State must be 2 characters"),
    ("defendant.state", "PAX", "State must be 2 characters"),
    ("defendant.driversLicenseState", "P", "State must be 2 characters"),
    ("court.zipCode", "1234", "Invalid zip code"),
    ("defendant.zipCode", "15213-12", "Invalid zip code"),
    ("case.socialSecurityNumber", "123456789", "SSN format: XXX-XX-XXXX"),
    ("defendant.sex", "X", "Sex must be one of: M, F"),
    ("victim.sex", "m", "Sex must be one of: M, F"),
    ("metadata.copyType", "COPY", "Copy type must be one of: ORIGINAL, DEFENDANT, PUBLIC_ACCESS_COPY, POLICE"),
])
def test_constraint_violations(validator, path, value, message):
    assert validator.validate_field(path, value) == message


@pytest.mark.parametrize("path, value", [
    ("court.state", "PA"),
    ("court.zipCode", "15213"),
    ("court.zipCode", "15213-1234"),
    ("case.socialSecurityNumber", "123-45-6789"),
    ("defendant.sex", "F"),
    ("metadata.copyType", "PUBLIC_ACCESS_COPY"),
    ("charge.natureOfOffense", "Disorderly conduct"),
])
def test_valid_values(validator, path, value):
    assert validator.validate_field(path, value) is None


def test_zip_code_must_match_whole_value(validator):
    assert validator.validate_field("court.zipCode", "15213x") == "Invalid zip code"
    assert validator.validate_field("court.zipCode", " 15213") == "Invalid zip code"


def test_type_mismatches_are_reported(validator):
    assert validator.validate_field("juvenile.isJuvenile", "yes") == "Expected true or false"
    assert validator.validate_field("citationNumber", 12345) == "Expected text"


def test_unknown_path_raises(validator):
    with pytest.raises(KeyError):
        validator.validate_field("defendant.nickname", "JD")


def test_validate_collects_every_failing_field(validator):
    document = ApplicationDocument.empty()
    document.set("court.zipCode", "1234")
    document.set("defendant.state", "PAX")
    document.set("defendant.firstName", "Jane")

    result = validator.validate(document)

    assert not result.valid
    assert result.errors == {
        "court.zipCode": "Invalid zip code",
        "defendant.state": "State must be 2 characters",
    }
    assert result.to_dict()["valid"] is False


def test_validate_accepts_nested_mapping(validator):
    """Test validation of a raw nested tree with sections missing."""
    result = validator.validate({"court": {"state": "NJ", "zipCode": "07001"}, "defendant": {"sex": "Q"}})

    assert result.errors == {"defendant.sex": "Sex must be one of: M, F"}
