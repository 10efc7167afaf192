"""
Tenant Context Middleware

Authentication happens upstream at the gateway, which forwards the resolved
identity in two headers:
  X-Tenant-ID  tenant every query is scoped to
  X-User-ID    user owning history and saved searches

Sets request.state.tenant_id and request.state.user_id for downstream
handlers. Requests without a tenant are rejected by the
``get_search_context`` dependency, not here, so health checks stay open.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from crm_search.exceptions import TenantRequiredError

if TYPE_CHECKING:
    from collections.abc import Callable

    from starlette.responses import Response

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-ID"
USER_HEADER = "X-User-ID"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class TenantContextMiddleware(BaseHTTPMiddleware):
    """
    Attach the caller's tenant and user to request.state.

    Attributes set on request.state:
        tenant_id (str | None)
        user_id   (str | None)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.tenant_id = _clean(request.headers.get(TENANT_HEADER))
        request.state.user_id = _clean(request.headers.get(USER_HEADER))

        if request.state.tenant_id:
            logger.debug("TenantContextMiddleware: tenant_id=%s user_id=%s", request.state.tenant_id, request.state.user_id)

        return await call_next(request)


@dataclass(frozen=True)
class SearchContext:
    tenant_id: str
    user_id: str | None = None


def get_search_context(request: Request) -> SearchContext:
    """
    FastAPI dependency resolving the caller's tenant and user.

    Raises:
        TenantRequiredError: If the request carries no tenant
    """
    tenant_id = getattr(request.state, "tenant_id", None)
    if not tenant_id:
        raise TenantRequiredError()
    return SearchContext(tenant_id=tenant_id, user_id=getattr(request.state, "user_id", None))
