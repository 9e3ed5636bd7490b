"""Agentic image workflow

Four stages run in sequence over one shared state:

1. IntentPlanner: classifies the request into an intent
2. RetrievalAugmenter: enriches the prompt with similar style references
3. TaskExecutor: calls the image backend and describes the result as UI widgets
4. QualityCritic: scores the result and grants a bounded number of retries

WorkflowEngine routes between them with an explicit transition table and
streams events while it runs.
"""

from .augmenter import RetrievalAugmenter
from .critic import QualityCritic
from .engine import CancellationToken, WorkflowEngine, WorkflowExecution, next_step
from .executor import TaskExecutor
from .planner import IntentPlanner

__all__ = [
    "WorkflowEngine",
    "WorkflowExecution",
    "CancellationToken",
    "IntentPlanner",
    "RetrievalAugmenter",
    "TaskExecutor",
    "QualityCritic",
    "next_step",
]
