"""
Domain Scope - Decides which hosts a capture session may record on.

Recording pauses automatically when the operator wanders off the target
system and resumes when they come back. Login redirects through well-known
identity providers stay in scope.

Matching order (first match wins):
    1. the base domain itself, or any of its subdomains
    2. the explicit allow-list (exact host or ``*.suffix`` wildcard)
    3. SSO providers (same matching; a built-in list when none configured)

Example:
    >>> scope = DomainScope(DomainScopeConfig(base_domain="app.example.com"))
    >>> scope.is_allowed_domain("https://login.microsoftonline.com/x").reason
    'sso_provider'
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlsplit

from pydantic import ValidationError

from web_replay_agent.config.settings import DomainScopeConfig
from web_replay_agent.exceptions.base import ConfigurationError
from web_replay_agent.models import NavigationEvent, now_ms

logger = logging.getLogger(__name__)


DEFAULT_SSO_PROVIDERS: List[str] = [
    "*.auth0.com",
    "*.okta.com",
    "*.oktapreview.com",
    "*.onelogin.com",
    "*.pingidentity.com",
    "*.duosecurity.com",
    "*.microsoftonline.com",
    "login.live.com",
    "accounts.google.com",
    "login.salesforce.com",
]

REASON_BASE_DOMAIN = "base_domain"
REASON_SUBDOMAIN = "subdomain"
REASON_SSO_PROVIDER = "sso_provider"
REASON_ALLOWLIST = "explicit_allowlist"
REASON_DENIED = "denied"

INVALID_DOMAIN = "invalid"


@dataclass
class DomainScopeResult:
    """Verdict for a single URL."""
    is_allowed: bool
    reason: str
    domain: str
    url: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def normalize_host(value: str) -> str:
    """Lowercase host with any scheme, port, path and trailing dot removed."""
    value = (value or "").strip().lower()
    if "://" in value:
        value = urlsplit(value).hostname or ""
    else:
        value = value.split("/", 1)[0].split(":", 1)[0]
    return value.rstrip(".")


def extract_domain(url: str) -> Optional[str]:
    """Hostname of ``url``, or None when it has none."""
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    return host.rstrip(".").lower()


def matches_pattern(domain: str, pattern: str) -> bool:
    """
    Exact host match, or ``*.suffix`` wildcard match.

    A wildcard also covers the bare suffix: ``*.okta.com`` matches
    ``okta.com`` as well as ``acme.okta.com``.
    """
    pattern = pattern.strip().lower().rstrip(".")
    if not pattern:
        return False
    if pattern.startswith("*."):
        suffix = pattern[2:]
        return domain == suffix or domain.endswith("." + suffix)
    return domain == normalize_host(pattern)


class DomainScope:
    """
    Per-session domain gate with a navigation history.

    Pure and synchronous, so it is safe to call from a navigation callback.
    """

    def __init__(self, config: DomainScopeConfig):
        self._config = config.model_copy(deep=True)
        self._history: List[NavigationEvent] = []
        self._is_recording_paused = False
        self._pause_reason: Optional[str] = None
        self._current_domain: Optional[str] = None

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_login_metadata(cls, metadata: Mapping[str, Any]) -> "DomainScope":
        """
        Build a scope from login metadata (``baseDomain``, ``allowedDomains``,
        ``ssoProviders``).

        Raises:
            ConfigurationError: If no base domain is present
        """
        base_domain = metadata.get("baseDomain") or metadata.get("base_domain")
        if not base_domain:
            raise ConfigurationError(
                "baseDomain is required in login metadata for domain scoping",
                {"keys": sorted(metadata.keys())},
            )
        return cls(DomainScopeConfig(
            base_domain=base_domain,
            allowed_domains=list(metadata.get("allowedDomains") or metadata.get("allowed_domains") or []),
            sso_providers=list(metadata.get("ssoProviders") or metadata.get("sso_providers") or []),
            metadata={"source": "login_metadata"},
        ))

    @staticmethod
    def validate_config(config: Any) -> bool:
        """True when ``config`` (model or mapping) is a usable scope config."""
        if isinstance(config, DomainScopeConfig):
            return bool(normalize_host(config.base_domain))
        if not isinstance(config, Mapping):
            return False
        try:
            parsed = DomainScopeConfig.model_validate(config)
        except ValidationError:
            return False
        return bool(normalize_host(parsed.base_domain))

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    @property
    def base_domain(self) -> str:
        return normalize_host(self._config.base_domain)

    @property
    def sso_providers(self) -> List[str]:
        return list(self._config.sso_providers) or list(DEFAULT_SSO_PROVIDERS)

    def is_allowed_domain(self, url: str) -> DomainScopeResult:
        """Evaluate ``url``. Never raises; unparseable URLs are denied."""
        domain = extract_domain(url)
        if domain is None:
            return DomainScopeResult(
                is_allowed=False,
                reason=REASON_DENIED,
                domain=INVALID_DOMAIN,
                url=url,
                metadata={"error": "Invalid URL"},
            )

        base = self.base_domain
        if domain == base:
            return self._allowed(url, domain, REASON_BASE_DOMAIN)
        if base and domain.endswith("." + base):
            return self._allowed(url, domain, REASON_SUBDOMAIN)

        for pattern in self._config.allowed_domains:
            if matches_pattern(domain, pattern):
                return self._allowed(url, domain, REASON_ALLOWLIST, matched=pattern)

        for pattern in self.sso_providers:
            if matches_pattern(domain, pattern):
                return self._allowed(url, domain, REASON_SSO_PROVIDER, matched=pattern)

        return DomainScopeResult(
            is_allowed=False,
            reason=REASON_DENIED,
            domain=domain,
            url=url,
            metadata=dict(self._config.metadata),
        )

    def _allowed(self, url: str, domain: str, reason: str, matched: Optional[str] = None) -> DomainScopeResult:
        metadata = dict(self._config.metadata)
        if matched:
            metadata["matchedPattern"] = matched
        return DomainScopeResult(is_allowed=True, reason=reason, domain=domain, url=url, metadata=metadata)

    def record_navigation(self, url: str) -> NavigationEvent:
        """Evaluate ``url``, append it to the history and update the pause state."""
        result = self.is_allowed_domain(url)
        event = NavigationEvent(
            url=url,
            domain=result.domain,
            allowed=result.is_allowed,
            reason=result.reason,
            timestamp=now_ms(),
            metadata=dict(result.metadata),
        )
        self._history.append(event)
        self._current_domain = result.domain

        if result.is_allowed:
            if self._is_recording_paused:
                logger.info(f"Recording resumed: back in scope on {result.domain} ({result.reason})")
            self._is_recording_paused = False
            self._pause_reason = None
        else:
            if not self._is_recording_paused:
                logger.info(f"Recording paused: {result.domain} is outside {self.base_domain}")
            self._is_recording_paused = True
            self._pause_reason = f"Recording paused: outside target system ({result.domain})"

        return event

    @property
    def is_recording_paused(self) -> bool:
        return self._is_recording_paused

    @property
    def pause_reason(self) -> Optional[str]:
        return self._pause_reason

    # ------------------------------------------------------------------
    # Runtime changes
    # ------------------------------------------------------------------

    def add_allowed_domain(self, domain: str) -> None:
        domain = domain.strip().lower()
        if domain and domain not in self._config.allowed_domains:
            self._config.allowed_domains.append(domain)
            logger.debug(f"Added allowed domain {domain}")

    def remove_allowed_domain(self, domain: str) -> None:
        domain = domain.strip().lower()
        if domain in self._config.allowed_domains:
            self._config.allowed_domains.remove(domain)
            logger.debug(f"Removed allowed domain {domain}")

    def update_config(self, **changes: Any) -> None:
        """
        Apply field changes (snake_case or camelCase) and re-validate.

        Raises:
            ConfigurationError: If the resulting config is invalid
        """
        merged = self._config.model_dump()
        for key, value in changes.items():
            field_name = _FIELD_ALIASES.get(key, key)
            if field_name not in merged:
                raise ConfigurationError(f"Unknown domain scope option: {key}")
            merged[field_name] = value
        try:
            self._config = DomainScopeConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigurationError("Invalid domain scope configuration", {"errors": e.errors()})

    def get_config(self) -> DomainScopeConfig:
        return self._config.model_copy(deep=True)

    def clear_history(self) -> None:
        self._history.clear()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_navigation_history(self) -> List[NavigationEvent]:
        return list(self._history)

    def get_recording_state(self) -> Dict[str, Any]:
        return {
            "isPaused": self._is_recording_paused,
            "reason": self._pause_reason,
            "currentDomain": self._current_domain,
            "allowedDomains": [self.base_domain, *self._config.allowed_domains, *self.sso_providers],
        }

    def get_domain_stats(self) -> Dict[str, Any]:
        reasons = Counter(event.reason for event in self._history)
        return {
            "totalNavigations": len(self._history),
            "allowedNavigations": sum(1 for e in self._history if e.allowed),
            "blockedNavigations": sum(1 for e in self._history if not e.allowed),
            "ssoNavigations": reasons.get(REASON_SSO_PROVIDER, 0),
            "uniqueDomains": sorted({e.domain for e in self._history}),
            "reasons": dict(reasons),
        }

    def get_summary(self) -> Dict[str, Any]:
        return {
            "config": self._config.model_dump(by_alias=True),
            "stats": self.get_domain_stats(),
            "state": self.get_recording_state(),
            "recentNavigations": [e.to_dict() for e in self._history[-10:]],
        }


_FIELD_ALIASES = {
    "baseDomain": "base_domain",
    "allowedDomains": "allowed_domains",
    "ssoProviders": "sso_providers",
}
