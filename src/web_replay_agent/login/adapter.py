"""
Login Adapter - Authenticated pages with session reuse.

The adapter logs in once, captures the resulting browser state (cookies,
localStorage, sessionStorage) through a pluggable codec and replays that
state into later pages until the session expires.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from web_replay_agent.config.settings import LoginConfig
from web_replay_agent.exceptions.base import InitializationError
from web_replay_agent.exceptions.browser import NavigationError
from web_replay_agent.exceptions.login import (
    LoginError,
    LoginFailedError,
    LoginFormNotFoundError,
    SessionRestoreError,
)
from web_replay_agent.login.codec import JsonSessionCodec, SessionCodec
from web_replay_agent.login.detector import LoginDetector
from web_replay_agent.utils.cancellation import CancellationToken

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(hours=24)

READ_STORAGE_JS = """
() => {
    const dump = (store) => {
        const out = {};
        for (let i = 0; i < store.length; i++) {
            const key = store.key(i);
            if (key !== null) out[key] = store.getItem(key) || '';
        }
        return out;
    };
    return {
        localStorage: dump(window.localStorage),
        sessionStorage: dump(window.sessionStorage),
        userAgent: navigator.userAgent,
    };
}
"""

WRITE_STORAGE_JS = """
(state) => {
    for (const [k, v] of Object.entries(state.localStorage || {})) window.localStorage.setItem(k, v);
    for (const [k, v] of Object.entries(state.sessionStorage || {})) window.sessionStorage.setItem(k, v);
}
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LoginSession:
    """
    A stored authentication.

    Attributes:
        id: ``session_<ms>_<random>``
        credentials: The login configuration that produced it
        session_data: Codec-encoded browser state
        created_at: When the login happened
        expires_at: Reuse deadline (24h after creation)
        metadata: Cookie names, user agent, form type
    """
    id: str
    credentials: LoginConfig
    session_data: str
    created_at: datetime
    expires_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    def is_valid(self, now: datetime) -> bool:
        return self.expires_at > now

    def matches(self, config: LoginConfig) -> bool:
        return (
            self.credentials.username == config.username
            and self.credentials.url == config.url
            and self.credentials.tenant == config.tenant
        )


class LoginAdapter:
    """
    Example:
        >>> adapter = LoginAdapter()
        >>> await adapter.initialize(page)
        >>> page = await adapter.get_authenticated_page(login_config)
    """

    def __init__(
        self,
        detector: Optional[LoginDetector] = None,
        codec: Optional[SessionCodec] = None,
        session_ttl: timedelta = SESSION_TTL,
        clock: Callable[[], datetime] = _utcnow,
        navigation_timeout_ms: int = 30000,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.cancel_token = cancel_token or CancellationToken()
        self.detector = detector or LoginDetector(cancel_token=self.cancel_token)
        self.codec: SessionCodec = codec or JsonSessionCodec()
        self.session_ttl = session_ttl
        self.navigation_timeout_ms = navigation_timeout_ms
        self._clock = clock
        self._page: Optional["Page"] = None
        self._sessions: Dict[str, LoginSession] = {}
        self._current_session: Optional[LoginSession] = None

    @property
    def is_initialized(self) -> bool:
        return self._page is not None

    async def initialize(self, page: "Page") -> None:
        self._page = page
        logger.debug("Login adapter initialized")

    async def init_login(self, page: "Page", config: LoginConfig) -> None:
        """Open the login page and let it settle."""
        try:
            await page.goto(config.url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
        except Exception as e:
            raise NavigationError(f"Failed to open login page {config.url}: {e}", url=config.url)
        await self.detector.wait_policy.wait_for_network_idle(page, self.navigation_timeout_ms)

    async def get_authenticated_page(self, config: LoginConfig) -> "Page":
        """
        Return the adapter's page in an authenticated state.

        Reuses the current session while it is valid for the same credentials,
        otherwise performs a fresh login.

        Raises:
            InitializationError: If called before initialize()
            LoginFormNotFoundError: If no login form could be found
            LoginFailedError: If the login attempt did not succeed
        """
        page = self._require_page()

        session = self._current_session
        if session is not None and session.matches(config) and session.is_valid(self._clock()):
            try:
                await self.restore_session_to_page(page, session)
                logger.info(f"Reusing login session {session.id}")
                return page
            except SessionRestoreError as e:
                logger.warning(f"Stored session unusable, logging in again: {e}")

        await self.init_login(page, config)
        await self._perform_login(page, config)
        return page

    async def _perform_login(self, page: "Page", config: LoginConfig) -> LoginSession:
        original_url = page.url
        form = await self.detector.detect_login_form(page)
        if form is None:
            raise LoginFormNotFoundError(f"No login form found on {page.url}", url=page.url)

        attempt = await self.detector.perform_login(page, form, config)
        if not attempt.success:
            raise LoginFailedError(
                f"Login failed: {attempt.error}", reason=attempt.error, form_type=form.form_type
            )

        verdict = await self.detector.verify_login_success(page, original_url)
        if not verdict.success:
            raise LoginFailedError(
                f"Login failed: {verdict.reason}", reason=verdict.reason, form_type=form.form_type
            )

        session_data, metadata = await self.extract_session_data(page)
        metadata["formType"] = form.form_type
        return self.store_session(config, session_data, metadata)

    async def extract_session_data(self, page: "Page") -> Tuple[str, Dict[str, Any]]:
        """Capture cookies and web storage, encoded through the codec."""
        cookies = await page.context.cookies()
        state = await page.evaluate(READ_STORAGE_JS)
        payload = {
            "cookies": cookies,
            "localStorage": state.get("localStorage", {}),
            "sessionStorage": state.get("sessionStorage", {}),
            "userAgent": state.get("userAgent"),
            "url": page.url,
            "timestamp": int(self._clock().timestamp() * 1000),
        }
        metadata = {
            "cookieNames": sorted({c.get("name", "") for c in cookies}),
            "userAgent": state.get("userAgent"),
        }
        return self.codec.encode(payload), metadata

    def store_session(self, config: LoginConfig, session_data: str, metadata: Optional[Dict[str, Any]] = None) -> LoginSession:
        created = self._clock()
        session = LoginSession(
            id=f"session_{int(created.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}",
            credentials=config,
            session_data=session_data,
            created_at=created,
            expires_at=created + self.session_ttl,
            metadata=metadata or {},
        )
        self._sessions[session.id] = session
        self._current_session = session
        logger.info(f"Stored login session {session.id} (expires {session.expires_at.isoformat()})")
        return session

    async def restore_session_to_page(self, page: "Page", session: LoginSession) -> None:
        """
        Apply a stored session's cookies and storage to ``page``.

        Raises:
            SessionRestoreError: If the blob cannot be decoded or applied
        """
        state = self.codec.decode(session.session_data)
        try:
            cookies = state.get("cookies") or []
            if cookies:
                await page.context.add_cookies(cookies)
            target = state.get("url") or session.credentials.url
            await page.goto(target, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
            await page.evaluate(WRITE_STORAGE_JS, {
                "localStorage": state.get("localStorage") or {},
                "sessionStorage": state.get("sessionStorage") or {},
            })
        except Exception as e:
            raise SessionRestoreError(f"Could not restore session: {e}", session_id=session.id)

    async def authenticate(self, page: "Page", config: LoginConfig) -> Dict[str, Any]:
        """
        Log in on ``page`` for a capture or replay pre-step.

        Authentication failures are reported, not raised, so the caller can
        carry on unauthenticated.
        """
        try:
            await self.initialize(page)
            await self.get_authenticated_page(config)
        except (LoginError, NavigationError) as e:
            logger.warning(f"Authentication failed, continuing without login: {e}")
            return {"success": False, "error": str(e)}
        session = self._current_session
        return {"success": True, "sessionId": session.id if session else None}

    def get_current_session(self) -> Optional[LoginSession]:
        return self._current_session

    def get_all_sessions(self) -> List[LoginSession]:
        return list(self._sessions.values())

    def clear_session(self) -> None:
        self._current_session = None

    async def cleanup(self) -> None:
        """Drop all sessions and release the page. Safe to call repeatedly."""
        self.cancel_token.cancel("login adapter cleanup")
        self._sessions.clear()
        self._current_session = None
        self._page = None
        self.detector.reset()

    def _require_page(self) -> "Page":
        if self._page is None:
            raise InitializationError("Login adapter not initialized. Call initialize() first.")
        return self._page
