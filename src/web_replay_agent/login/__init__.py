"""
Login module - Detect login forms, sign in, and reuse sessions.
"""

from web_replay_agent.login.verification import LoginVerdict, LoginVerificationPolicy
from web_replay_agent.login.detector import (
    LoginAttemptResult,
    LoginDetector,
    LoginForm,
    LoginState,
    LoginTimings,
    classify_form_type,
    determine_submission_method,
)
from web_replay_agent.login.codec import JsonSessionCodec, SessionCodec
from web_replay_agent.login.adapter import LoginAdapter, LoginSession

__all__ = [
    "LoginVerdict",
    "LoginVerificationPolicy",
    "LoginAttemptResult",
    "LoginDetector",
    "LoginForm",
    "LoginState",
    "LoginTimings",
    "classify_form_type",
    "determine_submission_method",
    "JsonSessionCodec",
    "SessionCodec",
    "LoginAdapter",
    "LoginSession",
]
