"""
Tests for the shared records.
"""

import json

import pytest

from web_replay_agent.exceptions import ActionValidationError, CaptureSessionSealedError
from web_replay_agent.models import (
    Action,
    ActionType,
    CaptureSession,
    ReplayResult,
    ReplaySession,
    load_actions,
    new_id,
    save_actions,
)


class TestActionType:

    def test_hyphenated_values(self):
        assert ActionType.DOUBLE_CLICK.value == "double-click"
        assert ActionType.DRAG_DROP.value == "drag-drop"

    def test_accepts_underscore_spelling(self):
        assert ActionType("double_click") is ActionType.DOUBLE_CLICK
        assert ActionType("KEY-PRESS") is ActionType.KEY_PRESS

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            ActionType("teleport")


class TestAction:

    def test_defaults(self):
        action = Action(id="a1", type=ActionType.CLICK)
        assert action.selector == "body"
        assert action.metadata == {}
        assert action.timestamp == 0

    def test_alternatives_exclude_primary(self):
        action = Action(
            id="a1",
            type=ActionType.CLICK,
            selector="#save",
            metadata={"alternatives": ["#save", "button.save", ""]},
        )
        assert action.alternatives == ["button.save"]

    def test_to_dict_uses_camel_case(self):
        action = Action(id="a1", type=ActionType.TYPE, selector="#q", value="cats", retry_count=2, order=0)
        data = action.to_dict()
        assert data["type"] == "type"
        assert data["retryCount"] == 2
        assert data["order"] == 0
        assert "url" not in data

    def test_from_dict(self):
        action = Action.from_dict({
            "id": "a9",
            "type": "right_click",
            "selector": "",
            "retryCount": 1,
            "metadata": {"timestamp": 42},
        })
        assert action.type is ActionType.RIGHT_CLICK
        assert action.selector == "body"
        assert action.retry_count == 1
        assert action.timestamp == 42


class TestCaptureSession:

    def test_append_after_seal(self):
        session = CaptureSession(id="c1", workflow_id="wf", url="https://example.com")
        session.append(Action(id="a1", type=ActionType.CLICK))
        session.seal()

        with pytest.raises(CaptureSessionSealedError):
            session.append(Action(id="a2", type=ActionType.CLICK))
        assert len(session.actions) == 1

    def test_seal_is_idempotent(self):
        session = CaptureSession(id="c1", workflow_id="wf", url="https://example.com")
        session.seal()
        first = session.end_time
        session.seal()
        assert session.end_time == first
        assert session.is_sealed


class TestReplaySession:

    def test_success_rate_without_actions(self):
        assert ReplaySession(id="r1").success_rate == 0.0

    def test_success_rate(self):
        actions = [Action(id=f"a{i}", type=ActionType.CLICK) for i in range(4)]
        session = ReplaySession(id="r1", actions=actions)
        session.results = [
            ReplayResult(action_id="a0", success=True, duration=1),
            ReplayResult(action_id="a1", success=True, duration=1),
            ReplayResult(action_id="a2", success=False, duration=1, error="boom"),
        ]
        assert session.success_rate == 0.5

    def test_result_to_dict(self):
        result = ReplayResult(action_id="a1", success=False, duration=5, error="x", screenshot="data:")
        data = result.to_dict()
        assert data["actionId"] == "a1"
        assert data["screenshotUrl"] == "data:"


class TestPersistence:

    def test_save_and_load_sorted_by_order(self, tmp_path):
        actions = [
            Action(id="b", type=ActionType.CLICK, selector="#b", order=1),
            Action(id="a", type=ActionType.NAVIGATE, url="https://example.com", order=0),
        ]
        path = save_actions(tmp_path / "flow.json", actions)

        loaded = load_actions(path)

        assert [a.id for a in loaded] == ["a", "b"]

    def test_load_document_form(self, tmp_path):
        path = tmp_path / "flow.json"
        path.write_text(json.dumps({"workflowId": "wf", "actions": [{"id": "a", "type": "click"}]}))

        loaded = load_actions(path)

        assert len(loaded) == 1
        assert loaded[0].type is ActionType.CLICK

    @pytest.mark.parametrize("content", [
        "not json",
        json.dumps({"actions": "nope"}),
        json.dumps([{"id": "a"}]),
        json.dumps([{"id": "a", "type": "teleport"}]),
    ])
    def test_load_rejects_malformed(self, tmp_path, content):
        path = tmp_path / "flow.json"
        path.write_text(content)

        with pytest.raises(ActionValidationError):
            load_actions(path)


def test_new_id_unique():
    ids = {new_id("action") for _ in range(50)}
    assert len(ids) == 50
    assert all(i.startswith("action_") for i in ids)
