"""Access policy: domain substring lists, client allow-lists, secret-segment auth.

Domain checks use *substring* matching on the hostname, so ``example.com``
also covers ``cdn.example.com`` (and, less obviously, ``notexample.com``).
The secret check answers 404 rather than 403 so the endpoint stays hidden.
"""

from __future__ import annotations

import hmac
import logging
import re
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit

from edgeproxy.config.settings import EdgeSettings
from edgeproxy.middleware.error_handler import AccessDeniedError

logger = logging.getLogger(__name__)

_SECRET_PATH = re.compile(r"^/([^/]+)(?:/(.*))?$", re.DOTALL)


@dataclass(frozen=True)
class AuthResult:
    """Outcome of the secret/trusted-caller check."""

    sub_path: str
    via: str  # "password" | "referer" | "admin"

    @property
    def used_password(self) -> bool:
        return self.via == "password"


class AccessFilter:
    """Evaluates every allow/deny rule before an upstream call is made."""

    def __init__(self, settings: EdgeSettings) -> None:
        self._password = settings.password
        self._blacklist = [item.lower() for item in settings.blacklist]
        self._whitelist = [item.lower() for item in settings.whitelist]
        self._allow_ips = set(settings.allow_ips)
        self._allow_countries = set(settings.allow_countries)
        self._admin_ips = set(settings.admin_ips)
        self._admin_ip_bypass = settings.admin_ip_bypass
        self._referer_rules = list(settings.trusted_referers)

    # ------------------------------------------------------------------
    # Domain policy (checked on every redirect hop)
    # ------------------------------------------------------------------

    def check_domain(self, url: str) -> None:
        """Raise AccessDeniedError if the URL's hostname is not allowed."""
        hostname = (urlsplit(url).hostname or "").lower()
        if any(item in hostname for item in self._blacklist):
            logger.info("Blocked domain %s (blacklist)", hostname)
            raise AccessDeniedError("Blocked Domain", host=hostname)
        if self._whitelist and not any(item in hostname for item in self._whitelist):
            logger.info("Blocked domain %s (not whitelisted)", hostname)
            raise AccessDeniedError("Blocked (Not Whitelisted)", host=hostname)

    # ------------------------------------------------------------------
    # Client policy
    # ------------------------------------------------------------------

    @property
    def restricts_clients(self) -> bool:
        return bool(self._allow_ips or self._allow_countries)

    def client_allowed(self, client_ip: str, country: str | None) -> bool:
        """IP in the IP list OR country in the country list, when any list is set."""
        if not self.restricts_clients:
            return True
        if client_ip in self._allow_ips:
            return True
        return bool(country) and country.upper() in self._allow_countries

    def is_admin(self, client_ip: str) -> bool:
        return client_ip in self._admin_ips

    # ------------------------------------------------------------------
    # Secret segment / trusted callers
    # ------------------------------------------------------------------

    def is_trusted_referer(self, referer: str | None) -> bool:
        """Match a referer against URL-prefix rules or hostname rules."""
        if not referer or not self._referer_rules:
            return False
        try:
            ref_host = (urlsplit(referer).hostname or "").lower()
        except ValueError:
            ref_host = None

        for rule in self._referer_rules:
            if "://" in rule:
                if referer.startswith(rule):
                    return True
                continue
            if ref_host is None:
                # Unparseable referer: plain substring
                if rule in referer:
                    return True
                continue
            rule_host = rule.lower()
            if ref_host == rule_host or ref_host.endswith("." + rule_host):
                return True
        return False

    def authenticate(
        self, path: str, client_ip: str, referer: str | None
    ) -> AuthResult | None:
        """Resolve the sub-path after the secret segment, or None when unauthenticated."""
        match = _SECRET_PATH.match(path)
        if match and hmac.compare_digest(
            unquote(match.group(1)).encode("utf-8"), self._password.encode("utf-8")
        ):
            return AuthResult(sub_path=match.group(2) or "", via="password")

        if self._admin_ip_bypass and self.is_admin(client_ip):
            return AuthResult(sub_path=path[1:], via="admin")
        if self.is_trusted_referer(referer):
            return AuthResult(sub_path=path[1:], via="referer")
        return None
