"""Orchestration layer for the guided citation application session."""

from .steps import StepCatalog, StepDefinition, StepEdge, STEPS
from .events import EventBus, SessionEvent, SessionEventType
from .session import SessionContext, SessionController, SubmissionResult, build_controller

__all__ = [
    "StepCatalog",
    "StepDefinition",
    "StepEdge",
    "STEPS",
    "EventBus",
    "SessionEvent",
    "SessionEventType",
    "SessionContext",
    "SessionController",
    "SubmissionResult",
    "build_controller"
]
