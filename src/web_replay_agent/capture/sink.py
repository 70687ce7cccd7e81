"""
Action sinks - Where validated captures are handed off.
"""

import json
import logging
from pathlib import Path
from typing import List, Protocol, Union

from web_replay_agent.models import Action, CaptureSession

logger = logging.getLogger(__name__)


class ActionSink(Protocol):
    """Receives the validated, ordered actions of a finished capture."""

    async def save_actions(self, session: CaptureSession, actions: List[Action]) -> None:
        ...


class JsonFileActionSink:
    """Writes ``{"workflowId", "sessionId", "actions"}`` to a JSON file."""

    def __init__(self, path: Union[str, Path], indent: int = 2):
        self.path = Path(path)
        self.indent = indent

    async def save_actions(self, session: CaptureSession, actions: List[Action]) -> None:
        document = {
            "workflowId": session.workflow_id,
            "sessionId": session.id,
            "url": session.url,
            "startTime": session.start_time,
            "endTime": session.end_time,
            "metadata": session.metadata,
            "actions": [a.to_dict() for a in actions],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(document, indent=self.indent, default=str))
        logger.info(f"Saved {len(actions)} actions to {self.path}")
