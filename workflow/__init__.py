"""Workflow package — LangGraph graph, state, conditions, and utilities."""

from workflow.graph import build_graph, run_generation, handle_event, validate_trigger
from workflow.state import GenerationState
from workflow.conditions import (
    route_after_init,
    route_after_batch,
    route_after_covers,
    route_after_bibliography,
)
from workflow.callbacks import WorkflowCallback, LoggingCallback, RichProgressCallback
from workflow.cancellation import request_cancellation, is_cancel_requested, clear_cancellation
from workflow.steps import StepRunner, batch_step_name, plan_batches
from workflow.events import (
    GENERATION_STARTED,
    GENERATION_CANCELLED,
    GENERATION_COMPLETED,
    GenerationStartedEvent,
    GenerationCancelledEvent,
    GenerationCompletedEvent,
)

__all__ = [
    "build_graph",
    "run_generation",
    "handle_event",
    "validate_trigger",
    "GenerationState",
    "route_after_init",
    "route_after_batch",
    "route_after_covers",
    "route_after_bibliography",
    "WorkflowCallback",
    "LoggingCallback",
    "RichProgressCallback",
    "request_cancellation",
    "is_cancel_requested",
    "clear_cancellation",
    "StepRunner",
    "batch_step_name",
    "plan_batches",
    "GENERATION_STARTED",
    "GENERATION_CANCELLED",
    "GENERATION_COMPLETED",
    "GenerationStartedEvent",
    "GenerationCancelledEvent",
    "GenerationCompletedEvent",
]
