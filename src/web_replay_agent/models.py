"""
Models - Records shared by capture, replay and their collaborators.

Everything here is a plain dataclass. ``to_dict()`` produces the camelCase
shape collaborators persist; ``from_dict()`` accepts it back.
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from web_replay_agent.exceptions.action import ActionValidationError
from web_replay_agent.exceptions.capture import CaptureSessionSealedError

if TYPE_CHECKING:
    from web_replay_agent.capture.domain_scope import DomainScope

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds (same clock as ``Date.now()``)."""
    return int(time.time() * 1000)


def new_id(prefix: str) -> str:
    return f"{prefix}_{now_ms()}_{uuid.uuid4().hex[:9]}"


class ActionType(str, Enum):
    """Types of replayable actions."""
    CLICK = "click"
    TYPE = "type"
    SELECT = "select"
    NAVIGATE = "navigate"
    SCROLL = "scroll"
    WAIT = "wait"
    HOVER = "hover"
    DOUBLE_CLICK = "double-click"
    RIGHT_CLICK = "right-click"
    DRAG_DROP = "drag-drop"
    KEY_PRESS = "key-press"
    SCREENSHOT = "screenshot"
    CUSTOM = "custom"

    @classmethod
    def _missing_(cls, value: object) -> Optional["ActionType"]:
        # accept "double_click", "DOUBLE-CLICK", ...
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            for member in cls:
                if member.value == normalized:
                    return member
        return None


# Types whose selector may legitimately be a placeholder
SELECTORLESS_TYPES = frozenset({ActionType.NAVIGATE, ActionType.SCROLL, ActionType.WAIT})


@dataclass
class Action:
    """
    A single replayable step.

    Attributes:
        id: Opaque unique token
        type: What to do
        selector: Target element; ``body`` when there is no meaningful target
        value: Typed text, selected option, key name, wait ms, drop target...
        url: Navigation target
        coordinates: Pointer or scroll position ({"x": .., "y": ..})
        timeout: Per-action timeout override (ms)
        retry_count: Per-action retry override
        metadata: Element tag/text, selector confidence, screenshot, ...
        order: Explicit position assigned when the capture is persisted
    """
    id: str
    type: ActionType
    selector: str = "body"
    value: Optional[str] = None
    url: Optional[str] = None
    coordinates: Optional[Dict[str, float]] = None
    timeout: Optional[int] = None
    retry_count: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    order: Optional[int] = None

    @property
    def timestamp(self) -> int:
        return int(self.metadata.get("timestamp", 0))

    @property
    def alternatives(self) -> List[str]:
        alternatives = self.metadata.get("alternatives") or []
        return [a for a in alternatives if isinstance(a, str) and a and a != self.selector]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "selector": self.selector,
            "metadata": self.metadata,
        }
        if self.value is not None:
            data["value"] = self.value
        if self.url is not None:
            data["url"] = self.url
        if self.coordinates is not None:
            data["coordinates"] = self.coordinates
        if self.timeout is not None:
            data["timeout"] = self.timeout
        if self.retry_count is not None:
            data["retryCount"] = self.retry_count
        if self.order is not None:
            data["order"] = self.order
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Action":
        return cls(
            id=str(data.get("id") or new_id("action")),
            type=ActionType(data["type"]),
            selector=data.get("selector") or "body",
            value=data.get("value"),
            url=data.get("url"),
            coordinates=data.get("coordinates"),
            timeout=data.get("timeout"),
            retry_count=data.get("retryCount", data.get("retry_count")),
            metadata=dict(data.get("metadata") or {}),
            order=data.get("order"),
        )


@dataclass(frozen=True)
class NavigationEvent:
    """One entry of a domain scope's navigation history."""
    url: str
    domain: str
    allowed: bool
    reason: str
    timestamp: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "domain": self.domain,
            "allowed": self.allowed,
            "reason": self.reason,
            "timestamp": self.timestamp,
            "metadata": dict(self.metadata),
        }


@dataclass
class CaptureSession:
    """
    A recording in progress (or finished).

    Actions are only ever appended; ``seal()`` freezes the session.
    """
    id: str
    workflow_id: str
    url: str
    start_time: int = field(default_factory=now_ms)
    end_time: Optional[int] = None
    actions: List[Action] = field(default_factory=list)
    domain_scope: Optional["DomainScope"] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_sealed(self) -> bool:
        return self.end_time is not None

    def append(self, action: Action) -> None:
        if self.is_sealed:
            raise CaptureSessionSealedError(
                "Cannot append to a stopped capture session", session_id=self.id
            )
        self.actions.append(action)

    def seal(self) -> None:
        if self.end_time is None:
            self.end_time = now_ms()

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "workflowId": self.workflow_id,
            "url": self.url,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "actions": [a.to_dict() for a in self.actions],
            "metadata": self.metadata,
        }
        if self.domain_scope is not None:
            data["domainScope"] = self.domain_scope.get_recording_state()
        return data


@dataclass
class ReplayResult:
    """Outcome of replaying one action."""
    action_id: str
    success: bool
    duration: int
    error: Optional[str] = None
    screenshot: Optional[str] = None
    selector: Optional[str] = None
    strategy: Optional[str] = None
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "actionId": self.action_id,
            "success": self.success,
            "duration": self.duration,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.screenshot is not None:
            data["screenshotUrl"] = self.screenshot
        if self.selector is not None:
            data["selector"] = self.selector
        if self.strategy is not None:
            data["strategy"] = self.strategy
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data


@dataclass
class ReplaySession:
    """One replay run over an ordered action list."""
    id: str
    actions: List[Action] = field(default_factory=list)
    results: List[ReplayResult] = field(default_factory=list)
    start_time: int = field(default_factory=now_ms)
    end_time: Optional[int] = None
    error_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if not self.actions:
            return 0.0
        successes = sum(1 for r in self.results if r.success)
        return successes / len(self.actions)

    @property
    def total_duration(self) -> int:
        end = self.end_time if self.end_time is not None else now_ms()
        return end - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "totalDuration": self.total_duration,
            "successRate": self.success_rate,
            "errorCount": self.error_count,
            "results": [r.to_dict() for r in self.results],
            "metadata": self.metadata,
        }


def save_actions(path: Union[str, Path], actions: List[Action], indent: int = 2) -> Path:
    """Write actions as a JSON array."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([a.to_dict() for a in actions], indent=indent))
    logger.info(f"Saved {len(actions)} actions to {path}")
    return path


def load_actions(path: Union[str, Path]) -> List[Action]:
    """
    Read actions written by :func:`save_actions` (or a ``{"actions": [...]}`` document).

    Raises:
        ActionValidationError: If the file is not a recorded action list
    """
    try:
        data = json.loads(Path(path).read_text())
    except ValueError as e:
        raise ActionValidationError(f"{path} is not valid JSON: {e}", action_type="file")
    if isinstance(data, dict):
        data = data.get("actions", [])
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ActionValidationError(f"{path} does not contain a list of actions", action_type="file")
    try:
        actions = [Action.from_dict(item) for item in data]
    except (KeyError, ValueError) as e:
        raise ActionValidationError(f"Malformed action in {path}: {e}", action_type="file")
    actions.sort(key=lambda a: a.order if a.order is not None else 0)
    return actions
