"""Step catalog and traversal rules for the guided application form."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..validation.schema import CITATION_SCHEMA, FormSchema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepDefinition:
    """
    One page of the guided form.

    Attributes:
        id: 1-based position in the catalog
        title: Short title shown in the progress bar
        description: One-line description of the step
        sections: Document sections rendered on this step ("" for root fields)
    """
    id: int
    title: str
    description: str
    sections: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StepEdge:
    """
    Conditional transition used instead of the linear successor.

    Attributes:
        source: Step id the edge leaves from
        target: Step id the edge leads to
        predicate: Pure function of the document deciding whether the edge applies
    """
    source: int
    target: int
    predicate: Callable[[Any], bool] = field(compare=False)


STEPS: List[StepDefinition] = [
    StepDefinition(1, "Citation & Court", "Basic citation and court information", ("", "court")),
    StepDefinition(2, "Case Information", "Case details and incident information", ("case",)),
    StepDefinition(3, "Defendant Details", "Defendant personal information", ("defendant",)),
    StepDefinition(4, "Juvenile Information", "Juvenile-specific details (if applicable)", ("juvenile",)),
    StepDefinition(5, "Charges", "Charge and offense details", ("charge",)),
    StepDefinition(6, "Financial", "Fines and costs", ("financial",)),
    StepDefinition(7, "Offense Details", "Offense date, time, and location", ("offense",)),
    StepDefinition(8, "Location", "Detailed location information", ("location",)),
    StepDefinition(9, "Officer Information", "Officer details and signature", ("officer",)),
    StepDefinition(10, "Victim Information", "Victim details (if applicable)", ("victim",)),
    StepDefinition(11, "Additional Information", "Confidential information and remarks", ("additional", "metadata")),
]


class StepCatalog:
    """
    Ordered, read-only list of steps with deterministic traversal.

    Without edges the traversal is linear: next moves to id + 1 and previous
    to id - 1, both no-ops at the ends. Edges, when given, override the
    forward move from their source step.
    """

    def __init__(
        self,
        steps: Optional[List[StepDefinition]] = None,
        edges: Optional[List[StepEdge]] = None
    ):
        self.steps: List[StepDefinition] = list(steps if steps is not None else STEPS)
        if not self.steps:
            raise ValueError("A step catalog needs at least one step")
        for position, step in enumerate(self.steps, start=1):
            if step.id != position:
                raise ValueError(f"Step ids must be 1..N in order; got {step.id} at position {position}")

        self._edges: Dict[int, List[StepEdge]] = {}
        for edge in edges or []:
            if not (self.contains(edge.source) and self.contains(edge.target)):
                raise ValueError(f"Edge {edge.source}->{edge.target} references an unknown step")
            self._edges.setdefault(edge.source, []).append(edge)

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def first_id(self) -> int:
        return 1

    @property
    def last_id(self) -> int:
        return len(self.steps)

    @property
    def is_linear(self) -> bool:
        return not self._edges

    def contains(self, step_id: int) -> bool:
        return 1 <= step_id <= len(self.steps)

    def get(self, step_id: int) -> StepDefinition:
        """
        Look up a step by id.

        Raises:
            KeyError: If no step has that id
        """
        if not self.contains(step_id):
            raise KeyError(step_id)
        return self.steps[step_id - 1]

    def next_id(self, current: int, document: Any = None) -> int:
        """
        Step reached by moving forward from ``current``.

        Args:
            current: Current step id
            document: Document the edge predicates are evaluated against

        Returns:
            The next step id, or ``current`` when already at the last step
        """
        for edge in self._edges.get(current, []):
            if edge.predicate(document):
                logger.debug(f"Edge {edge.source}->{edge.target} taken")
                return edge.target
        return current + 1 if current < self.last_id else current

    def previous_id(self, current: int) -> int:
        """Linear predecessor, or ``current`` when already at the first step."""
        return current - 1 if current > self.first_id else current

    def fields_for(self, step_id: int, schema: FormSchema = CITATION_SCHEMA) -> List[str]:
        """Field paths rendered on a step, in schema order."""
        sections = self.get(step_id).sections
        return [spec.path for spec in schema.fields if spec.section in sections]
