"""
auth/guard.py -- Authorization checks applied before protected operations.

Always in this order: require_authenticated, then require_owner.
Ownership compares stable principal ids with strict equality. Email and
nickname are mutable and never used for authorization.

The guard never touches the session store; it only inspects the principal
the transport layer restored for the current request.
"""

from __future__ import annotations

from auth.models import PublicPrincipal
from core.errors import Forbidden, Unauthorized


def require_authenticated(principal: PublicPrincipal | None) -> PublicPrincipal:
    if principal is None:
        raise Unauthorized()
    return principal


def require_owner(principal: PublicPrincipal, resource_owner_id: int) -> PublicPrincipal:
    """Raise Forbidden unless principal owns the resource."""
    if type(principal.id) is not type(resource_owner_id) or principal.id != resource_owner_id:
        raise Forbidden()
    return principal
