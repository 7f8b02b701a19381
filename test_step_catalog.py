"""Tests for the step catalog."""

import pytest

from citation_intake.orchestration import STEPS, StepCatalog, StepDefinition, StepEdge
from citation_intake.validation import CITATION_SCHEMA


def test_default_catalog():
    catalog = StepCatalog()

    assert len(catalog) == 11
    assert catalog.first_id == 1
    assert catalog.last_id == 11
    assert catalog.is_linear
    assert catalog.get(1).title == "Citation & Court"
    assert catalog.get(11).title == "Additional Information"


def test_linear_traversal_bounds():
    catalog = StepCatalog()

    assert catalog.next_id(1) == 2
    assert catalog.next_id(11) == 11
    assert catalog.previous_id(1) == 1
    assert catalog.previous_id(11) == 10


def test_unknown_step():
    with pytest.raises(KeyError):
        StepCatalog().get(12)


def test_every_field_belongs_to_exactly_one_step():
    """Test that the steps cover the whole schema without overlap."""
    catalog = StepCatalog()
    rendered = []
    for step in catalog.steps:
        rendered.extend(catalog.fields_for(step.id, CITATION_SCHEMA))

    assert sorted(rendered) == sorted(CITATION_SCHEMA.paths)
    assert len(rendered) == len(set(rendered))


def test_first_step_fields():
    fields = StepCatalog().fields_for(1)

    assert fields[0] == "citationNumber"
    assert "court.zipCode" in fields
    assert "case.socialSecurityNumber" not in fields


def test_step_ids_must_be_contiguous():
    with pytest.raises(ValueError):
        StepCatalog(steps=[STEPS[0], STEPS[2]])
    with pytest.raises(ValueError):
        StepCatalog(steps=[])


def test_edge_must_reference_known_steps():
    with pytest.raises(ValueError):
        StepCatalog(edges=[StepEdge(3, 14, lambda document: True)])


def test_edges_override_linear_successor():
    catalog = StepCatalog(edges=[
        StepEdge(3, 5, lambda document: document == "adult"),
        StepEdge(3, 4, lambda document: True),
    ])

    assert not catalog.is_linear
    assert catalog.next_id(3, "adult") == 5
    assert catalog.next_id(3, "juvenile") == 4
    assert catalog.next_id(4, "adult") == 5


def test_custom_catalog():
    steps = [
        StepDefinition(1, "Who", "Defendant", ("defendant",)),
        StepDefinition(2, "What", "Charge", ("charge",)),
    ]
    catalog = StepCatalog(steps=steps)

    assert catalog.next_id(1) == 2
    assert catalog.next_id(2) == 2
    assert catalog.fields_for(2)[0] == "charge.charge"
