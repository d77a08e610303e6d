"""Identity resolution for requests arriving through the access proxy.

The proxy authenticates callers and injects their email (and optionally a
display name) as headers. Nothing here re-verifies that claim; the proxy is
the trust boundary. Only the two configured principals may use the service.
"""

import logging
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .errors import ConfigurationError, Unauthenticated, Unauthorized
from .models import Principal

logger = logging.getLogger(__name__)


class IdentityConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    user1_email: str = ""
    user2_email: str = ""
    email_header: str = "Cf-Access-Authenticated-User-Email"
    name_header: str = "Cf-Access-Authenticated-User-Name"


def allowed_principals(config: IdentityConfig) -> Tuple[str, str]:
    emails = [e.strip() for e in (config.user1_email, config.user2_email) if e and e.strip()]
    if len(emails) != 2:
        raise ConfigurationError("Both USER1_EMAIL and USER2_EMAIL must be configured")
    if emails[0] == emails[1]:
        raise ConfigurationError("USER1_EMAIL and USER2_EMAIL must be distinct")
    return emails[0], emails[1]


def display_name(principal: Principal) -> str:
    """Proxy-supplied name, else the local part of the email."""
    if principal.name:
        return principal.name
    return principal.email.split("@")[0]


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                return candidate
    return value


class IdentityResolver:
    def __init__(self, config: IdentityConfig):
        self.config = config

    def resolve_principal(self, headers: Mapping[str, str]) -> Principal:
        email = (_header(headers, self.config.email_header) or "").strip()
        if not email:
            raise Unauthenticated()
        name = (_header(headers, self.config.name_header) or "").strip()
        return Principal(email=email, name=name or None)

    def allowed_principals(self) -> Tuple[str, str]:
        return allowed_principals(self.config)

    def authorize(self, principal: Principal, allowed: Tuple[str, str]) -> Principal:
        if principal.email not in allowed:
            logger.warning(
                "Rejected principal outside the allowlist",
                extra={"principal": principal.email},
            )
            raise Unauthorized(principal.email)
        return principal

    def counterparty(self, principal: Principal, allowed: Tuple[str, str]) -> str:
        others = [email for email in allowed if email != principal.email]
        if len(others) != 1:
            raise ConfigurationError("Invalid user email or configuration error")
        return others[0]

    def verify(self, headers: Mapping[str, str]) -> Principal:
        """Resolve the caller and check them against the allowlist."""
        principal = self.resolve_principal(headers)
        return self.authorize(principal, self.allowed_principals())
