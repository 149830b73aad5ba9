# Overview: Request and access decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .permissions import ActionCapability
from .services import audit_service, session_service, subscription_service, team_service
from .services.access_engine import Decision, DenyReason, get_policy
from .services.platform_admin import is_platform_admin


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'tenant_id')


def request_location_id() -> str | None:
    """Location the request is scoped to: URL parameter, query string, or X-Location-Id header."""
    view_args = request.view_args or {}
    return (
        view_args.get("location_id")
        or request.args.get("location_id")
        or request.headers.get("X-Location-Id")
    )


def current_subscription():
    """SubscriptionState of the request's tenant, loaded once per request."""
    if not hasattr(g, "subscription"):
        g.subscription = (
            subscription_service.get_subscription_state(g.tenant_id) if g.tenant_id is not None else None
        )
    return g.subscription


def _tenant_missing():
    """400 for tenant-scoped routes reached by a platform-admin session with no tenant selected."""
    if g.tenant_id is None:
        return jsonify({"error": "select a tenant"}), 400
    return None


def denial_response(decision: Decision, *, action: str, location_id: str | None = None):
    """Log the denial and build the 403 body shared by every access decorator."""
    audit_service.log_decision(
        decision,
        user_id=g.current_user.id,
        tenant_id=g.tenant_id,
        action=action,
        resource=request.path,
        location_id=location_id,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    body = {
        "error": "Access denied",
        "reason": decision.reason,
        "message": decision.message,
        "required": action,
    }
    if decision.upgrade_required:
        body["upgrade_required"] = True
    return jsonify(body), 403


def _record_admin_grant(decision: Decision, *, action: str, location_id: str | None = None) -> None:
    if decision.allowed and decision.platform_admin:
        audit_service.log_decision(
            decision,
            user_id=g.current_user.id,
            tenant_id=g.tenant_id,
            action=action,
            resource=request.path,
            location_id=location_id,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User
    - g.tenant_id: The tenant this session acts on
    - g.platform_admin: True for platform-admin sessions
    - g.member: MemberSnapshot for (tenant, user), or None
    - g.session_context: The full SessionContext

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account or tenant deactivated
    - Session missing tenant (allowed only for platform admins)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required", "reason": DenyReason.NOT_AUTHENTICATED}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token", "reason": DenyReason.NOT_AUTHENTICATED}), 401

        if context.tenant_id is None and not context.platform_admin:
            audit_service.log_security_event(
                user_id=context.user.id,
                event_type="TENANT_CONTEXT_MISSING",
                success=False,
                resource=request.path,
                action=request.method,
                reason="Session missing tenant_id",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
            )
            return jsonify({"error": "Invalid session: missing tenant context"}), 401

        g.current_user = context.user
        g.tenant_id = context.tenant_id
        g.platform_admin = context.platform_admin
        g.session_context = context
        g.pop("subscription", None)
        g.member = (
            team_service.get_member_snapshot(context.tenant_id, context.user.id)
            if context.tenant_id is not None else None
        )

        return f(*args, **kwargs)

    return decorated_function


def require_module(module: str):
    """
    Require access to an application module (role + location + subscription).

    Denials are logged with the deny reason; grants under the platform-admin
    override are logged as PLATFORM_ADMIN_ACCESS.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401
            missing = _tenant_missing()
            if missing is not None:
                return missing

            location_id = request_location_id()
            decision = get_policy().decide(
                g.member,
                current_subscription(),
                module,
                location_id,
                platform_admin=g.platform_admin,
            )
            if not decision.allowed:
                return denial_response(decision, action=module, location_id=location_id)

            _record_admin_grant(decision, action=module, location_id=location_id)
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_permission(permission_code: str):
    """Require a fine-grained permission string such as "locations.delete"."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401
            missing = _tenant_missing()
            if missing is not None:
                return missing

            location_id = request_location_id()
            decision = get_policy().check(
                g.member,
                None,
                ActionCapability(permission_code),
                location_id,
                platform_admin=g.platform_admin,
            )
            if not decision.allowed:
                return denial_response(decision, action=permission_code, location_id=location_id)

            _record_admin_grant(decision, action=permission_code, location_id=location_id)
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_feature(feature: str):
    """Require a plan feature flag, independent of role."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401
            missing = _tenant_missing()
            if missing is not None:
                return missing

            decision = get_policy().decide_feature(
                current_subscription(), feature, platform_admin=g.platform_admin
            )
            if not decision.allowed:
                return denial_response(decision, action=feature)

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_within_limit(limit_key: str):
    """
    Require room under a plan limit before a create endpoint runs.

    The service that creates the resource moves the usage counter in the
    same operation.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401
            missing = _tenant_missing()
            if missing is not None:
                return missing

            decision = get_policy().check_limit(
                current_subscription(), limit_key, platform_admin=g.platform_admin
            )
            if not decision.allowed:
                return denial_response(decision, action=limit_key)

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_platform_admin(f):
    """Require the authenticated user to be on the platform-admin allow-list."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, 'current_user'):
            return jsonify({"error": "Authentication required"}), 401
        if not is_platform_admin(g.current_user.email):
            audit_service.log_security_event(
                user_id=g.current_user.id,
                event_type="PLATFORM_ADMIN_DENIED",
                success=False,
                resource=request.path,
                action=request.method,
                reason="Not on platform admin allow-list",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
                tenant_id=getattr(g, "tenant_id", None),
            )
            return jsonify({"error": "Platform admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function


def require_member(f):
    """Require an active membership in the session's tenant (platform admins pass)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        missing = _tenant_missing()
        if missing is not None:
            return missing

        denial = get_policy().membership(g.member, platform_admin=g.platform_admin)
        if denial is not None:
            return denial_response(denial, action=request.endpoint or request.path)
        return f(*args, **kwargs)
    return decorated_function
