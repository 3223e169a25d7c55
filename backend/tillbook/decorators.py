# Overview: Request and permission decorators for API routes.

from __future__ import annotations

from dataclasses import dataclass, field
from functools import wraps

from flask import current_app, g, jsonify, request

from .permissions import permissions_for_role


@dataclass(frozen=True)
class ActorContext:
    """The already-authenticated caller, as resolved by the upstream gateway."""
    actor_id: int
    role: str | None = None
    permissions: frozenset = field(default_factory=frozenset)

    def has(self, permission_code: str) -> bool:
        return permission_code in self.permissions


def _parse_actor() -> ActorContext | None:
    raw_id = (request.headers.get("X-Actor-Id") or "").strip()
    if not raw_id.isdigit() or int(raw_id) <= 0:
        return None

    role = (request.headers.get("X-Actor-Role") or "").strip() or None
    raw_perms = request.headers.get("X-Actor-Permissions")
    if raw_perms is None:
        # No explicit list: fall back to the role's default set
        permissions = permissions_for_role(role)
    else:
        permissions = frozenset(p.strip().upper() for p in raw_perms.split(",") if p.strip())

    return ActorContext(actor_id=int(raw_id), role=role, permissions=permissions)


def current_actor() -> ActorContext:
    return g.actor


def require_actor(f):
    """
    Require a resolved actor on the request.

    Sets g.actor (ActorContext). Returns 401 when X-Actor-Id is missing or
    not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = _parse_actor()
        if actor is None:
            return jsonify({"error": "Authentication required"}), 401
        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a specific permission. Must be applied after @require_actor."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required"}), 401

            if not actor.has(permission_code):
                current_app.logger.warning(
                    "Permission %s denied for actor %d on %s %s",
                    permission_code, actor.actor_id, request.method, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
