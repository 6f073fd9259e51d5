"""Tenant resolution for a single unit of work"""

import logging
from typing import Any, Mapping, MutableMapping, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from orgtree.config import settings
from orgtree.exceptions import ValidationError
from orgtree.models.tenant import Tenant
from orgtree.monitoring.metrics import metrics_collector

logger = logging.getLogger(__name__)


class TenantContext:
    """
    Resolves and holds the active tenant identifier for one request.

    Created per unit of work and injected into the hierarchy service, so
    concurrent requests never share tenant state. When tenancy is disabled
    every resolution yields None and scoping is a no-op.
    """

    def __init__(
        self,
        enabled: Optional[bool] = None,
        session: Optional[MutableMapping[str, Any]] = None,
        actor: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, str]] = None,
        host: Optional[str] = None,
        db: Optional[Session] = None,
        tenant_model: Optional[type] = Tenant,
    ):
        self.enabled = settings.tenancy_enabled if enabled is None else enabled
        self.session = session if session is not None else {}
        self.actor = actor
        self.headers = headers or {}
        self.params = params or {}
        self.host = host
        self.db = db
        self.tenant_model = tenant_model

        self._bound: Optional[str] = None
        self._tenant: Any = None
        self._resolved: Optional[Tuple[Optional[str], Optional[str]]] = None

    def is_enabled(self) -> bool:
        return self.enabled

    @property
    def current_tenant(self) -> Any:
        """Tenant object bound by set(), when the lookup model found one"""
        return self._tenant

    def resolve(self) -> Optional[str]:
        """
        Resolve the active tenant identifier.

        Sources are tried in order: explicitly bound value, session, the
        actor's tenant, request header, request parameter, subdomain.

        Returns:
            Tenant identifier as a string, or None if no source produced one
        """
        if not self.enabled:
            return None

        if self._resolved is None:
            self._resolved = self._resolve_with_source()
            tenant_id, source = self._resolved
            if tenant_id is not None:
                metrics_collector.record_tenant_resolution(source)
        return self._resolved[0]

    def _resolve_with_source(self) -> Tuple[Optional[str], Optional[str]]:
        candidates = (
            ("bound", lambda: self._bound),
            ("session", lambda: self.session.get(settings.tenant_session_key)),
            ("actor", self._tenant_from_actor),
            ("header", lambda: self._header(settings.tenant_header)),
            ("param", lambda: self.params.get(settings.tenant_param)),
            ("subdomain", self._tenant_from_host),
        )

        for source, candidate in candidates:
            value = candidate()
            if value not in (None, ""):
                return str(value), source

        return None, None

    def set(self, tenant_id: Optional[Any]) -> None:
        """
        Override the tenant for the rest of this unit of work and persist it
        to the session store for later ones.
        """
        value = str(tenant_id) if tenant_id not in (None, "") else None

        self._bound = value
        self._tenant = None
        self._resolved = (value, "bound") if value is not None else None
        if value is None:
            self.session.pop(settings.tenant_session_key, None)
        else:
            self.session[settings.tenant_session_key] = value
            self._tenant = self._lookup_tenant(value)

        logger.debug(f"Tenant context set to {value}")

    def require(self) -> Optional[str]:
        """
        Tenant identifier for a write.

        Returns None when tenancy is disabled.

        Raises:
            ValidationError: If tenancy is enabled and no tenant resolves
        """
        if not self.enabled:
            return None

        tenant_id = self.resolve()
        if tenant_id is None:
            raise ValidationError.for_field(
                "tenant_id", "A tenant is required but none could be resolved"
            )
        return tenant_id

    def apply(self, query, column):
        """Restrict a query to the active tenant when tenancy is on and resolved"""
        tenant_id = self.resolve()
        if tenant_id is None:
            return query
        return query.filter(column == tenant_id)

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _header(self, name: str) -> Optional[str]:
        value = self.headers.get(name)
        if value is None:
            value = self.headers.get(name.lower())
        return value

    def _tenant_from_actor(self) -> Optional[str]:
        if self.actor is None:
            return None

        getter = getattr(self.actor, "get_current_tenant_id", None)
        if callable(getter):
            return getter()
        return getattr(self.actor, "tenant_id", None)

    def _tenant_from_host(self) -> Optional[str]:
        if not self.host:
            return None

        host = self.host.split(":")[0]
        parts = host.split(".")
        if len(parts) < 3 or parts[0] == "www":
            return None

        subdomain = parts[0]
        if self.tenant_model is None or self.db is None:
            # No lookup available: the raw subdomain is the identifier
            return subdomain

        tenant = (
            self.db.query(self.tenant_model)
            .filter(self.tenant_model.subdomain == subdomain)
            .first()
        )
        return str(tenant.id) if tenant else None

    def _lookup_tenant(self, tenant_id: str) -> Any:
        if self.tenant_model is None or self.db is None:
            return None

        try:
            key = UUID(tenant_id)
        except ValueError:
            logger.debug(f"Tenant id {tenant_id} is not a {self.tenant_model.__name__} key, left unresolved")
            return None

        return self.db.get(self.tenant_model, key)
