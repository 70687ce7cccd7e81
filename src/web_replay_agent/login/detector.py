"""
Login Detector - Find, classify and drive login forms.

Detection probes ordered selector lists for the identifier field, the
password field and the submit control. The form is then classified into a
login pattern (traditional, provider multi-step, OAuth, SSO, passwordless,
SPA) which decides how credentials are entered and submitted.

State machine:
    IDLE -> DETECTING -> FOUND | NOT_FOUND
    FOUND -> AUTHENTICATING -> SUCCESS | FAILED
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from web_replay_agent.capture.selector_generator import GeneratedSelector, SelectorGenerator
from web_replay_agent.config.settings import LoginConfig
from web_replay_agent.exceptions.base import OperationCancelledError
from web_replay_agent.login.verification import LoginVerdict, LoginVerificationPolicy
from web_replay_agent.replay.wait_policy import WaitOptions, WaitPolicy
from web_replay_agent.utils.cancellation import CancellationToken, ensure_token

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle, Page

logger = logging.getLogger(__name__)


EMAIL_SELECTORS: Tuple[str, ...] = (
    'input[type="email"]',
    'input[name="email"]',
    'input[name="username"]',
    'input[name="user"]',
    'input[name="login"]',
    'input[name="account"]',
    'input[id="email"]',
    'input[id="username"]',
    'input[id="user"]',
    'input[id="login"]',
    'input[id="account"]',
    'input[placeholder*="email" i]',
    'input[placeholder*="username" i]',
    'input[placeholder*="user" i]',
    'input[placeholder*="login" i]',
    'input[placeholder*="account" i]',
    'input[placeholder*="phone" i]',
    "input.email",
    "input.username",
    "input.login",
    ".email-input input",
    ".username-input input",
    ".login-input input",
    # Microsoft
    'input[name="loginfmt"]',
    'input[id="i0116"]',
    # Google
    'input[type="email"][autocomplete="username"]',
    'input[id="identifierId"]',
    'input[autocomplete="username"]',
    'input[autocomplete="email"]',
    'input[data-testid*="email"]',
    'input[data-testid*="username"]',
    '[data-cy*="email"]',
    '[data-cy*="username"]',
)

PASSWORD_SELECTORS: Tuple[str, ...] = (
    'input[type="password"]',
    'input[name="password"]',
    'input[name="pass"]',
    'input[name="pwd"]',
    'input[id="password"]',
    'input[id="pass"]',
    'input[id="pwd"]',
    'input[placeholder*="password" i]',
    "input.password",
    ".password-input input",
    'input[autocomplete="current-password"]',
    # Microsoft
    'input[name="passwd"]',
    'input[id="i0118"]',
    'input[data-testid*="password"]',
    '[data-cy*="password"]',
)

SUBMIT_SELECTORS: Tuple[str, ...] = (
    'button[type="submit"]',
    'input[type="submit"]',
    "#login-button",
    "#signin-button",
    "#submit-button",
    "#continue-button",
    "#next-button",
    "#idSIButton9",
    ".login-button",
    ".signin-button",
    ".submit-button",
    ".btn-login",
    ".btn-signin",
    'button[data-testid*="login"]',
    'button[data-testid*="signin"]',
    'button[data-testid*="submit"]',
    'button:has-text("Sign in")',
    'button:has-text("Log in")',
    'button:has-text("Login")',
    'button:has-text("Continue")',
    'button:has-text("Next")',
    "form button",
)

OAUTH_BUTTON_SELECTOR = ", ".join((
    'button[class*="oauth"]',
    'button[class*="social"]',
    'a[class*="oauth"]',
    'a[class*="social"]',
    'button[class*="google"]',
    'button[class*="microsoft"]',
    'button[class*="github"]',
    'a[href*="/oauth/authorize"]',
))

OAUTH_PHRASES = (
    "sign in with google",
    "sign in with microsoft",
    "sign in with facebook",
    "sign in with apple",
    "sign in with github",
    "continue with google",
    "continue with microsoft",
    "continue with facebook",
    "continue with apple",
    "login with google",
    "log in with google",
    "login with facebook",
)

SSO_PHRASES = (
    "single sign-on",
    "single sign on",
    "sign in with sso",
    "continue with sso",
    "enterprise login",
    "organization account",
    "your organization",
    "active directory",
    "saml",
)

PASSWORDLESS_PHRASES = (
    "magic link",
    "passwordless",
    "email me a link",
    "email link",
    "send me a code",
    "sms code",
    "one-time code",
)

SPA_MARKERS = (
    "__NEXT_DATA__",
    "data-reactroot",
    "ng-version",
    "__NUXT__",
    "data-v-app",
    'id="__next"',
    "data-sveltekit",
)

MULTI_STEP_TYPES = ("google-multi-step", "microsoft-multi-step")


class LoginState(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    FOUND = "found"
    NOT_FOUND = "not_found"
    AUTHENTICATING = "authenticating"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class LoginForm:
    """Located login form. Handles are only valid for the page they came from."""
    email_field: "ElementHandle"
    password_field: Optional["ElementHandle"]
    submit_button: Optional["ElementHandle"]
    form_type: str
    submission_method: str
    email_selector: Optional[str] = None
    password_selector: Optional[str] = None
    submit_selector: Optional[str] = None
    generated_selectors: Dict[str, GeneratedSelector] = field(default_factory=dict)

    @property
    def requires_multi_step(self) -> bool:
        return self.form_type in MULTI_STEP_TYPES or self.form_type == "oauth"


@dataclass
class LoginAttemptResult:
    success: bool
    form_type: Optional[str] = None
    error: Optional[str] = None
    verdict: Optional[LoginVerdict] = None


@dataclass
class LoginTimings:
    """
    Delays used while probing and driving login forms (seconds).

    Attributes:
        probe_delays: Delay before each probe pass over a selector list
        step_delay: Pause after submitting the identifier of a multi-step login
        post_submit_delay: Pause after the final submission
        type_delay_ms: Per-keystroke delay when typing
        spa_type_delay_ms: Per-keystroke delay for SPA forms
        transition_timeout_ms: Upper bound for page-transition waits
    """
    probe_delays: Sequence[float] = (0.0, 2.0, 1.5)
    step_delay: float = 1.5
    post_submit_delay: float = 2.0
    type_delay_ms: int = 100
    spa_type_delay_ms: int = 150
    transition_timeout_ms: int = 10000


def _hostname(url: str) -> str:
    try:
        return (urlsplit(url or "").hostname or "").lower()
    except ValueError:
        return ""


def _contains_any(text: str, phrases: Sequence[str]) -> bool:
    return any(phrase in text for phrase in phrases)


def classify_form_type(
    url: str,
    page_text: str = "",
    html: str = "",
    has_password_field: bool = True,
    has_oauth_buttons: bool = False,
) -> str:
    """
    Classify a login page.

    Priority: provider hostname > OAuth > SSO > passwordless > SPA > traditional.
    """
    host = _hostname(url)
    if host == "google.com" or host.endswith(".google.com"):
        return "google-multi-step"
    if re.search(r"(^|\.)(microsoftonline\.com|microsoft\.com|live\.com)$", host):
        return "microsoft-multi-step"

    text = " ".join((page_text or "").lower().split())
    if has_oauth_buttons or _contains_any(text, OAUTH_PHRASES):
        return "oauth"
    if _contains_any(text, SSO_PHRASES):
        return "sso"
    if not has_password_field or _contains_any(text, PASSWORDLESS_PHRASES):
        return "passwordless"
    if _contains_any(html or "", SPA_MARKERS):
        return "spa"
    return "traditional"


def determine_submission_method(form_type: str, has_submit_button: bool) -> str:
    if form_type in MULTI_STEP_TYPES:
        return "enter"
    if form_type == "oauth":
        return "oauth-popup"
    if form_type == "passwordless":
        return "auto-submit"
    return "click" if has_submit_button else "enter"


class LoginDetector:
    """
    Detects and performs logins on a Playwright page.

    Example:
        >>> detector = LoginDetector()
        >>> form = await detector.detect_login_form(page)
        >>> if form:
        ...     result = await detector.perform_login(page, form, login_config)
    """

    def __init__(
        self,
        timings: Optional[LoginTimings] = None,
        verification_policy: Optional[LoginVerificationPolicy] = None,
        wait_policy: Optional[WaitPolicy] = None,
        selector_generator: Optional[SelectorGenerator] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.timings = timings or LoginTimings()
        self.verification_policy = verification_policy or LoginVerificationPolicy()
        self.cancel_token = ensure_token(cancel_token)
        self.wait_policy = wait_policy or WaitPolicy(
            WaitOptions(timeout=self.timings.transition_timeout_ms),
            cancel_token=self.cancel_token,
        )
        self.selector_generator = selector_generator or SelectorGenerator()
        self.state = LoginState.IDLE
        self.current_form_type: Optional[str] = None

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def find_element(
        self,
        page: "Page",
        selectors: Sequence[str],
    ) -> Tuple[Optional["ElementHandle"], Optional[str]]:
        """First visible element matching ``selectors``, probing in several passes."""
        for delay in self.timings.probe_delays:
            if delay:
                await self.cancel_token.sleep(delay)
            for selector in selectors:
                try:
                    element = await page.query_selector(selector)
                    if element is not None and await element.is_visible():
                        return element, selector
                except OperationCancelledError:
                    raise
                except Exception as e:
                    logger.debug(f"Probe {selector!r} failed: {e}")
        return None, None

    async def detect_login_form(self, page: "Page") -> Optional[LoginForm]:
        """Locate the login form on ``page``; None when no usable form is found."""
        self.state = LoginState.DETECTING
        self.current_form_type = None
        try:
            await self.wait_policy.wait_for_network_idle(page, self.timings.transition_timeout_ms)

            email_field, email_selector = await self.find_element(page, EMAIL_SELECTORS)
            password_field, password_selector = await self.find_element(page, PASSWORD_SELECTORS)
            if email_field is None or password_field is None:
                logger.info(
                    f"No login form on {page.url}: "
                    f"identifier={'found' if email_field else 'missing'}, "
                    f"password={'found' if password_field else 'missing'}"
                )
                self.state = LoginState.NOT_FOUND
                return None

            submit_button, submit_selector = await self.find_element(page, SUBMIT_SELECTORS)

            page_text = await self._page_text(page)
            html = await self._page_html(page)
            has_oauth = await self._has_oauth_buttons(page)
            form_type = classify_form_type(
                page.url,
                page_text=page_text,
                html=html,
                has_password_field=password_field is not None,
                has_oauth_buttons=has_oauth,
            )
            submission_method = determine_submission_method(form_type, submit_button is not None)

            form = LoginForm(
                email_field=email_field,
                password_field=password_field,
                submit_button=submit_button,
                form_type=form_type,
                submission_method=submission_method,
                email_selector=email_selector,
                password_selector=password_selector,
                submit_selector=submit_selector,
            )
            await self._describe_fields(form)

            self.state = LoginState.FOUND
            self.current_form_type = form_type
            logger.info(f"Detected {form_type} login form on {page.url} (submit via {submission_method})")
            return form
        except OperationCancelledError:
            self.state = LoginState.NOT_FOUND
            raise
        except Exception as e:
            logger.warning(f"Login form detection failed on {page.url}: {e}")
            self.state = LoginState.NOT_FOUND
            return None

    async def _describe_fields(self, form: LoginForm) -> None:
        handles = {
            "email": form.email_field,
            "password": form.password_field,
            "submit": form.submit_button,
        }
        for name, handle in handles.items():
            if handle is None:
                continue
            try:
                descriptor = await self.selector_generator.describe_element(handle)
            except Exception as e:
                logger.debug(f"Could not describe {name} field: {e}")
                continue
            if descriptor.tag:
                form.generated_selectors[name] = self.selector_generator.generate_selector(descriptor)

    async def _has_oauth_buttons(self, page: "Page") -> bool:
        try:
            return await page.query_selector(OAUTH_BUTTON_SELECTOR) is not None
        except Exception:
            return False

    @staticmethod
    async def _page_text(page: "Page") -> str:
        try:
            return await page.inner_text("body")
        except Exception as e:
            logger.debug(f"Could not read page text: {e}")
            return ""

    @staticmethod
    async def _page_html(page: "Page") -> str:
        try:
            return await page.content()
        except Exception as e:
            logger.debug(f"Could not read page HTML: {e}")
            return ""

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def perform_login(self, page: "Page", form: LoginForm, credentials: LoginConfig) -> LoginAttemptResult:
        """Enter credentials and submit. Failures are returned, not raised."""
        self.state = LoginState.AUTHENTICATING
        self.current_form_type = form.form_type
        password = credentials.password.get_secret_value()
        try:
            if form.form_type in MULTI_STEP_TYPES:
                return await self._multi_step_login(page, form, credentials.username, password)
            if form.form_type == "oauth":
                return self._failed(form, "OAuth login requires manual handling")
            if form.form_type == "passwordless":
                await form.email_field.fill(credentials.username)
                await self._submit(form, form.email_field)
                return LoginAttemptResult(success=True, form_type=form.form_type)
            if form.form_type == "spa":
                await self._type_into(form.email_field, credentials.username, self.timings.spa_type_delay_ms, clear=True)
                if form.password_field is not None:
                    await self._type_into(form.password_field, password, self.timings.spa_type_delay_ms, clear=True)
                await self._submit(form, form.password_field or form.email_field)
                await self.cancel_token.sleep(self.timings.post_submit_delay)
                return LoginAttemptResult(success=True, form_type=form.form_type)

            await form.email_field.fill(credentials.username)
            if form.password_field is not None:
                await form.password_field.fill(password)
            await self._submit(form, form.password_field or form.email_field)
            await self.cancel_token.sleep(self.timings.post_submit_delay)
            return LoginAttemptResult(success=True, form_type=form.form_type)
        except OperationCancelledError:
            self.state = LoginState.FAILED
            raise
        except Exception as e:
            logger.warning(f"Login attempt failed ({form.form_type}): {e}")
            return self._failed(form, str(e))

    async def _multi_step_login(self, page: "Page", form: LoginForm, username: str, password: str) -> LoginAttemptResult:
        await self._type_into(form.email_field, username, self.timings.type_delay_ms)
        await form.email_field.press("Enter")

        await self.wait_policy.wait_for_network_idle(page, self.timings.transition_timeout_ms)
        await self.cancel_token.sleep(self.timings.step_delay)

        # The identifier step replaces the document; never reuse the old handle
        password_field, _ = await self.find_element(page, PASSWORD_SELECTORS)
        if password_field is None:
            return self._failed(form, "Password field not found after email step")

        await self._type_into(password_field, password, self.timings.type_delay_ms)
        await password_field.press("Enter")

        await self.wait_policy.wait_for_network_idle(page, self.timings.transition_timeout_ms)
        await self.cancel_token.sleep(self.timings.post_submit_delay)
        return LoginAttemptResult(success=True, form_type=form.form_type)

    @staticmethod
    async def _type_into(element: "ElementHandle", text: str, delay_ms: int, clear: bool = False) -> None:
        await element.click()
        if clear:
            await element.fill("")
        await element.type(text, delay=delay_ms)

    @staticmethod
    async def _submit(form: LoginForm, last_field: "ElementHandle") -> None:
        if form.submit_button is not None and form.submission_method in ("click", "auto-submit"):
            await form.submit_button.click()
        else:
            await last_field.press("Enter")

    def _failed(self, form: LoginForm, error: str) -> LoginAttemptResult:
        self.state = LoginState.FAILED
        return LoginAttemptResult(success=False, form_type=form.form_type, error=error)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify_login_success(self, page: "Page", original_url: str) -> LoginVerdict:
        """Judge the current page with the verification policy."""
        page_text = await self._page_text(page)
        password_present = False
        try:
            password_field = await page.query_selector('input[type="password"]')
            password_present = password_field is not None and await password_field.is_visible()
        except Exception as e:
            logger.debug(f"Password field check failed: {e}")

        verdict = self.verification_policy.evaluate(
            page_text=page_text,
            current_url=page.url,
            original_url=original_url,
            password_field_present=password_present,
        )
        self.state = LoginState.SUCCESS if verdict.success else LoginState.FAILED
        logger.info(f"Login verification: {'success' if verdict.success else 'failed'} ({verdict.reason})")
        return verdict

    async def login(self, page: "Page", credentials: LoginConfig) -> LoginAttemptResult:
        """Detect, perform and verify in one call."""
        original_url = page.url
        form = await self.detect_login_form(page)
        if form is None:
            return LoginAttemptResult(success=False, error="Login form not found")

        result = await self.perform_login(page, form, credentials)
        if not result.success:
            return result

        verdict = await self.verify_login_success(page, original_url)
        return LoginAttemptResult(
            success=verdict.success,
            form_type=form.form_type,
            error=None if verdict.success else verdict.reason,
            verdict=verdict,
        )

    def reset(self) -> None:
        self.state = LoginState.IDLE
        self.current_form_type = None
