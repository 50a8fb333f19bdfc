from .push_task import (
    PushOrchestrator,
    PushOutcome,
    PushOutcomeVariant,
    summarize_push,
    summarize_push_error,
    invalidation_keys,
)
from .auto_sync import AutoSync
from .debounce import DebouncedSaver, AsyncioScheduler, ThreadingScheduler

__all__ = [
    "PushOrchestrator", "PushOutcome", "PushOutcomeVariant",
    "summarize_push", "summarize_push_error", "invalidation_keys",
    "AutoSync",
    "DebouncedSaver", "AsyncioScheduler", "ThreadingScheduler",
]
