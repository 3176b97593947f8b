"""
Tenant (organization) resolution.

Strategies, first match wins:
1. Trusted proxy header: ``x-org-id`` honored only with ``x-org-id-proxy: 1``
   (both are stripped from client input and re-injected by the ingress layer).
2. Path segment: ``<prefix>/<id-or-slug>`` looked up by id OR slug.
3. Subdomain: the Host must match an allowed base domain exactly or as a
   ``.<domain>`` suffix; otherwise resolution stops with None. The leftmost
   label, unless reserved, is looked up as a slug.
4. Session fallback: the authenticated user's ``last_active_org_id``.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Mapping, Optional

import structlog
from starlette.requests import HTTPConnection

from roteiro_server.core.auth import SessionProvider
from roteiro_server.core.config import Settings
from roteiro_server.core.stores import OrganizationStore, UserStore

log = structlog.get_logger()

ORG_ID_HEADER = "x-org-id"
ORG_ID_PROXY_MARKER_HEADER = "x-org-id-proxy"
PROXY_MARKER_VALUE = "1"


@dataclass(frozen=True)
class TenantResolverConfig:
    """Computed once at startup and shared read-only across requests."""

    allowed_domains: tuple[str, ...]
    path_prefix: str = "/o"
    reserved_subdomains: frozenset[str] = frozenset({"www", "app"})

    @classmethod
    def from_settings(cls, settings: Settings) -> "TenantResolverConfig":
        domains = tuple(dict.fromkeys(settings.allowed_domains()))
        if not domains:
            log.error("tenant.no_allowed_domains")
        return cls(
            allowed_domains=domains,
            path_prefix="/" + settings.tenant_path_prefix.strip("/"),
            reserved_subdomains=frozenset(s.lower() for s in settings.reserved_subdomains),
        )

    @property
    def path_pattern(self) -> re.Pattern:
        return re.compile(rf"^{re.escape(self.path_prefix)}/([^/]+)")

    def is_allowed_host(self, host: str) -> bool:
        return any(host == domain or host.endswith(f".{domain}") for domain in self.allowed_domains)


class TenantResolver:
    def __init__(
        self,
        config: TenantResolverConfig,
        organizations: OrganizationStore,
        users: UserStore,
        sessions: SessionProvider,
    ):
        self.config = config
        self.organizations = organizations
        self.users = users
        self.sessions = sessions

    async def resolve(
        self,
        request: HTTPConnection,
        trusted_headers: Optional[Mapping[str, str]] = None,
    ) -> Optional[uuid.UUID]:
        """Return the active organization id for ``request``, or None."""
        header_source = trusted_headers if trusted_headers is not None else request.headers

        # 1. Trusted proxy header
        org_id = self._from_trusted_header(header_source)
        if org_id is not None:
            return org_id

        # 2. Path segment
        match = self.config.path_pattern.match(request.url.path)
        if match:
            org = await self.organizations.find_by_id_or_slug(match.group(1))
            if org is not None:
                return org.id

        # 3. Subdomain, only for recognized hosts
        if not self.config.allowed_domains:
            return None

        raw_host = request.headers.get("host") or ""
        host = raw_host.lower().strip()
        if not self.config.is_allowed_host(host):
            log.warning(
                "tenant.invalid_host",
                host=raw_host,
                allowed=list(self.config.allowed_domains),
            )
            return None

        subdomain = None if host in self.config.allowed_domains else host.split(".")[0]
        if subdomain and subdomain not in self.config.reserved_subdomains:
            org = await self.organizations.find_by_slug(subdomain)
            if org is not None:
                return org.id

        # 4. Session fallback
        session = await self.sessions.get_session(header_source)
        if session is not None:
            return await self.users.get_last_active_org_id(session.user.id)

        return None

    def _from_trusted_header(self, headers: Mapping[str, str]) -> Optional[uuid.UUID]:
        value = headers.get(ORG_ID_HEADER)
        if not value or headers.get(ORG_ID_PROXY_MARKER_HEADER) != PROXY_MARKER_VALUE:
            return None
        try:
            return uuid.UUID(value)
        except ValueError:
            log.warning("tenant.malformed_org_header", value=value)
            return None
