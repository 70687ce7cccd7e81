"""
Login verification - Decide whether an authentication attempt worked.

The decision is a pure function of page facts so it can be tested without a
browser. Error phrases are checked first; success requires positive evidence
(no password field left AND the URL moved off any login path). Anything else
fails closed. Brand or greeting text ("Welcome", "Sign in to Acme") is never
treated as success.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlsplit


# (category, phrase) pairs, checked in order, case-insensitively
DEFAULT_ERROR_PHRASES: Tuple[Tuple[str, str], ...] = (
    ("password", "wrong password"),
    ("password", "incorrect password"),
    ("password", "invalid password"),
    ("password", "your password is incorrect"),
    ("password", "password is incorrect"),
    ("credentials", "invalid credentials"),
    ("credentials", "incorrect username or password"),
    ("credentials", "invalid username or password"),
    ("credentials", "invalid email or password"),
    ("credentials", "incorrect email or password"),
    ("credentials", "authentication failed"),
    ("credentials", "login failed"),
    ("credentials", "sign in failed"),
    ("account", "user not found"),
    ("account", "account not found"),
    ("account", "couldn't find your account"),
    ("account", "couldn't find your google account"),
    ("account", "this username may be incorrect"),
    ("account", "we don't recognize this"),
    ("account", "that microsoft account doesn't exist"),
    ("account", "account has been locked"),
    ("account", "account is locked"),
    ("provider", "couldn't sign you in"),
    ("provider", "too many failed attempts"),
    ("provider", "too many attempts"),
    ("generic", "something went wrong"),
    ("generic", "please try again"),
)

DEFAULT_LOGIN_PATH_PATTERNS: Tuple[str, ...] = (
    r"/login\b",
    r"/log-in\b",
    r"/signin\b",
    r"/sign-in\b",
    r"/sign_in\b",
    r"/auth\b",
    r"/oauth2?\b",
    r"/sso\b",
    r"/saml\b",
    r"/session/new\b",
)

DEFAULT_LOGIN_HOSTS: Tuple[str, ...] = (
    "accounts.google.com",
    "login.microsoftonline.com",
    "login.live.com",
)


@dataclass
class LoginVerdict:
    """Outcome of a verification."""
    success: bool
    reason: str
    matched_phrase: Optional[str] = None
    category: Optional[str] = None


@dataclass
class LoginVerificationPolicy:
    """
    Ordered rule table for login verification.

    Attributes:
        error_phrases: (category, phrase) pairs; any match fails the login
        login_path_patterns: Regexes identifying a login URL path
        login_hosts: Hosts that are login pages regardless of path
    """
    error_phrases: Sequence[Tuple[str, str]] = field(default_factory=lambda: list(DEFAULT_ERROR_PHRASES))
    login_path_patterns: Sequence[str] = field(default_factory=lambda: list(DEFAULT_LOGIN_PATH_PATTERNS))
    login_hosts: Sequence[str] = field(default_factory=lambda: list(DEFAULT_LOGIN_HOSTS))

    def __post_init__(self) -> None:
        self._path_regexes: List[re.Pattern] = [re.compile(p, re.IGNORECASE) for p in self.login_path_patterns]

    def find_error(self, page_text: str) -> Optional[Tuple[str, str]]:
        text = " ".join((page_text or "").lower().replace("’", "'").split())
        for category, phrase in self.error_phrases:
            if phrase.lower() in text:
                return category, phrase
        return None

    def is_login_url(self, url: str) -> bool:
        try:
            parts = urlsplit(url or "")
        except ValueError:
            return False
        host = (parts.hostname or "").lower()
        if host in self.login_hosts:
            return True
        path = parts.path or "/"
        return any(regex.search(path) for regex in self._path_regexes)

    def evaluate(
        self,
        page_text: str,
        current_url: str,
        original_url: str,
        password_field_present: bool,
    ) -> LoginVerdict:
        """
        Judge an attempt from page facts.

        Args:
            page_text: Visible text of the page after submission
            current_url: URL after submission
            original_url: URL the login started from
            password_field_present: Whether a password input is still on the page
        """
        error = self.find_error(page_text)
        if error is not None:
            category, phrase = error
            return LoginVerdict(
                success=False,
                reason=f"Login error detected: {phrase}",
                matched_phrase=phrase,
                category=category,
            )

        if password_field_present:
            return LoginVerdict(success=False, reason="Password field still present after submission")

        if current_url == original_url:
            return LoginVerdict(success=False, reason="URL did not change after submission")

        if self.is_login_url(current_url):
            return LoginVerdict(success=False, reason=f"Still on a login page: {current_url}")

        return LoginVerdict(success=True, reason=f"Redirected away from login to {current_url}")
