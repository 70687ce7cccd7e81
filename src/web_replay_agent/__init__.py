"""
Web Replay Agent - Record browser interactions and replay them later.

This package captures what an operator does on a live page, turns it into a
portable sequence of actions with robust selectors, and re-executes that
sequence against the same (or an equivalent) page.

Example:
    >>> from web_replay_agent import CaptureSessionManager, CaptureConfig
    >>> manager = CaptureSessionManager(CaptureConfig())
    >>> await manager.start_capture(page, "wf-1", "https://app.example.com")
    >>> actions = await manager.stop_capture()
"""

__version__ = "0.1.0"

# Public API exports
from web_replay_agent.config.settings import (
    Settings,
    CaptureConfig,
    ReplayConfig,
    LoginConfig,
    DomainScopeConfig,
)
from web_replay_agent.models import (
    Action,
    ActionType,
    CaptureSession,
    NavigationEvent,
    ReplayResult,
    ReplaySession,
)
from web_replay_agent.capture.domain_scope import DomainScope
from web_replay_agent.capture.selector_generator import SelectorGenerator
from web_replay_agent.capture.manager import CaptureSessionManager
from web_replay_agent.login.adapter import LoginAdapter
from web_replay_agent.login.detector import LoginDetector
from web_replay_agent.replay.manager import ReplaySessionManager
from web_replay_agent.replay.wait_policy import WaitPolicy

__all__ = [
    "Settings",
    "CaptureConfig",
    "ReplayConfig",
    "LoginConfig",
    "DomainScopeConfig",
    "Action",
    "ActionType",
    "CaptureSession",
    "NavigationEvent",
    "ReplayResult",
    "ReplaySession",
    "DomainScope",
    "SelectorGenerator",
    "CaptureSessionManager",
    "LoginAdapter",
    "LoginDetector",
    "ReplaySessionManager",
    "WaitPolicy",
    "__version__",
]
