"""
Capture - Recording user interactions into replayable actions.
"""

from web_replay_agent.capture.channel import DrainResult, PageActionChannel
from web_replay_agent.capture.domain_scope import DomainScope, DomainScopeResult
from web_replay_agent.capture.manager import CaptureSessionManager
from web_replay_agent.capture.selector_generator import (
    ElementDescriptor,
    GeneratedSelector,
    SelectorGenerator,
    SelectorOptions,
)
from web_replay_agent.capture.sink import ActionSink, JsonFileActionSink
from web_replay_agent.capture.validation import (
    DomSnapshot,
    ValidationIssue,
    coerce_selector,
    validate_action,
    validate_selector,
)

__all__ = [
    "ActionSink",
    "CaptureSessionManager",
    "DomSnapshot",
    "DomainScope",
    "DomainScopeResult",
    "DrainResult",
    "ElementDescriptor",
    "GeneratedSelector",
    "JsonFileActionSink",
    "PageActionChannel",
    "SelectorGenerator",
    "SelectorOptions",
    "ValidationIssue",
    "coerce_selector",
    "validate_action",
    "validate_selector",
]
