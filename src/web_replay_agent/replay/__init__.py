"""
Replay - Re-executing recorded actions with explicit waits.
"""

from web_replay_agent.replay.wait_policy import WaitCondition, WaitOptions, WaitPolicy, WaitResult
from web_replay_agent.replay.manager import ReplaySessionManager, ResolvedTarget

__all__ = [
    "ReplaySessionManager",
    "ResolvedTarget",
    "WaitCondition",
    "WaitOptions",
    "WaitPolicy",
    "WaitResult",
]
