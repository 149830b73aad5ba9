# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/coreaccess/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated databases).
#
# Tenant management:
# - python -m flask tenants list
#   List all tenants with tier, status and member count.
# - python -m flask tenants create --name "Acme Corp" --code ACME --owner-email owner@acme.test --tier professional
#   Create a tenant with its trial subscription, main location and owner.
#
# Users and team:
# - python -m flask users list
# - python -m flask users create --email jo@acme.test --name "Jo"
# - python -m flask team add --tenant-id 1 --email jo@acme.test --role staff --location location_ab12
#   Put an existing user on a tenant's roster (repeat --location/--permission).
#
# Sessions:
# - python -m flask sessions issue --email jo@acme.test --tenant-id 1 [--platform-admin]
#   Print a bearer token for API calls.
# - python -m flask sessions revoke-all --email jo@acme.test
#
# Plans and access:
# - python -m flask plans list
# - python -m flask access check --tenant-id 1 --email jo@acme.test --module analytics [--location location_ab12]
# - python -m flask access check --tenant-id 1 --email jo@acme.test --permission inventory.delete
#
# Maintenance:
# - python -m flask usage reset-monthly [--tenant-id 1]
#   Zero orders_this_month and api_calls_this_month.

import click
from flask.cli import with_appcontext

from .extensions import db
from .permissions import ROLES, ActionCapability, ModuleCapability
from .plans import UNLIMITED, list_plans
from .services import session_service, subscription_service, team_service, tenant_service, user_service
from .services.access_engine import get_policy
from .services.errors import LimitReachedError
from .services.platform_admin import is_platform_admin


def _require_user(email: str):
    user = user_service.get_user_by_email(email)
    if not user:
        raise click.ClickException(f"User {email} not found")
    return user


def _limit_str(value: int) -> str:
    return "unlimited" if value == UNLIMITED else str(value)


# =============================================================================
# SYSTEM COMMANDS
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables for a fresh development database."""
    db.create_all()
    click.echo("PASS Database tables created")


# =============================================================================
# TENANT COMMANDS
# =============================================================================

@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = tenant_service.list_tenants()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<12} {'Active':<8} {'Tier':<14} {'Status':<10} {'Members'}")
    click.echo("="*80)

    for tenant in tenants:
        state = subscription_service.get_subscription_state(tenant.id)
        members = len(team_service.list_members(tenant.id))
        active_str = "Yes" if tenant.is_active else "No"
        tier = state.tier if state else "-"
        status = state.status if state else "-"

        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<12} {active_str:<8} {tier:<14} {status:<10} {members}")

    click.echo("="*80 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', help='Short code (unique)')
@click.option('--owner-email', help='Existing or new user to make owner')
@click.option('--tier', default='starter', show_default=True, help='Plan tier for the trial')
@with_appcontext
def create_tenant_cli(name, code, owner_email, tier):
    """Create a tenant with its trial subscription, main location and owner."""
    owner_id = None
    if owner_email:
        owner = user_service.get_user_by_email(owner_email) or user_service.create_user(owner_email)
        owner_id = owner.id

    try:
        tenant = tenant_service.create_tenant(name, code=code, owner_user_id=owner_id, tier=tier)
    except (tenant_service.TenantAccessError, subscription_service.SubscriptionError) as exc:
        click.echo(f"FAIL {exc}")
        return

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code or '-'}, Tier: {tier})")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', 'display_name', help='Display name (defaults to the email local part)')
@with_appcontext
def create_user_cli(email, display_name):
    """Create a user identity."""
    try:
        user = user_service.create_user(email, display_name)
    except user_service.UserError as exc:
        click.echo(f"FAIL {exc}")
        return
    click.echo(f"PASS Created user: {user.email} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their memberships."""
    users = user_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<32} {'Active':<8} {'Admin':<7} {'Memberships'}")
    click.echo("="*80)

    for user in users:
        memberships = ", ".join(
            f"{member.tenant_id}:{member.role}" for member in team_service.memberships_for_user(user.id)
        ) or "-"
        active_str = "Yes" if user.is_active else "No"
        admin_str = "Yes" if is_platform_admin(user.email) else "No"
        click.echo(f"{user.id:<5} {user.email:<32} {active_str:<8} {admin_str:<7} {memberships}")

    click.echo("="*80 + "\n")


@click.group('team')
def team_group():
    """Team roster commands."""


@team_group.command('add')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--email', required=True, help='User email')
@click.option('--role', type=click.Choice(ROLES), required=True, help='Role')
@click.option('--location', 'location_ids', multiple=True, help='Accessible location id (repeatable)')
@click.option('--permission', 'permissions', multiple=True, help='Permission string (repeatable; defaults to the role)')
@with_appcontext
def add_member_cli(tenant_id, email, role, location_ids, permissions):
    """Put an existing user on a tenant's roster."""
    user = _require_user(email)
    try:
        member = team_service.add_member(
            tenant_id,
            user.id,
            role,
            location_ids=list(location_ids),
            permissions=list(permissions) or None,
        )
    except (team_service.TeamError, LimitReachedError) as exc:
        click.echo(f"FAIL {exc}")
        return
    click.echo(f"PASS Added {email} to tenant {tenant_id} as {member.role}")


# =============================================================================
# SESSION COMMANDS
# =============================================================================

@click.group('sessions')
def sessions_group():
    """Session issuing commands."""


@sessions_group.command('issue')
@click.option('--email', required=True, help='User email')
@click.option('--tenant-id', type=int, help='Tenant to act on')
@click.option('--platform-admin', is_flag=True, help='Open the session under the platform-admin override')
@with_appcontext
def issue_session(email, tenant_id, platform_admin):
    """Print a bearer token for the user."""
    user = _require_user(email)
    try:
        session, token = session_service.create_session(user.id, tenant_id, platform_admin=platform_admin)
    except session_service.SessionError as exc:
        click.echo(f"FAIL {exc}")
        return
    click.echo(f"PASS Session {session.id} for {email} (tenant {session.tenant_id}, expires {session.expires_at})")
    click.echo(token)


@sessions_group.command('revoke-all')
@click.option('--email', required=True, help='User email')
@click.option('--reason', default='Revoked from CLI', show_default=True)
@with_appcontext
def revoke_sessions(email, reason):
    """Revoke every open session of the user."""
    user = _require_user(email)
    count = session_service.revoke_all_user_sessions(user.id, reason)
    click.echo(f"PASS Revoked {count} session(s) for {email}")


# =============================================================================
# PLAN AND ACCESS COMMANDS
# =============================================================================

@click.group('plans')
def plans_group():
    """Plan catalog commands."""


@plans_group.command('list')
@with_appcontext
def list_plans_cli():
    """Print the plan catalog."""
    for plan in list_plans():
        enabled = [name for name, value in plan.features.to_dict().items() if value]
        click.echo(f"\n{plan.name} ({plan.tier}) ${plan.monthly_price_cents / 100:.2f}/mo")
        for key, value in plan.limits.to_dict().items():
            click.echo(f"  {key:<22} {_limit_str(value)}")
        click.echo(f"  features: {', '.join(enabled)}")
    click.echo("")


@click.group('access')
def access_group():
    """Authorization inspection commands."""


@access_group.command('check')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--email', required=True, help='User email')
@click.option('--module', help='Module to decide, e.g. analytics')
@click.option('--permission', help='Permission string to check, e.g. inventory.delete')
@click.option('--location', 'location_id', help='Location id to scope the check to')
@click.option('--platform-admin', is_flag=True, help='Evaluate under the platform-admin override')
@with_appcontext
def check_access(tenant_id, email, module, permission, location_id, platform_admin):
    """Explain one access decision."""
    if bool(module) == bool(permission):
        raise click.UsageError("Pass exactly one of --module or --permission")

    user = _require_user(email)
    if platform_admin and not is_platform_admin(user.email):
        click.echo(f"FAIL {email} is not on the platform-admin allow-list")
        return

    member = team_service.get_member_snapshot(tenant_id, user.id)
    subscription = subscription_service.get_subscription_state(tenant_id)
    capability = ModuleCapability(module) if module else ActionCapability(permission)

    decision = get_policy().check(member, subscription, capability, location_id, platform_admin=platform_admin)
    label = module or permission
    if decision.allowed:
        click.echo(f"ALLOW {label}" + (" (platform admin)" if decision.platform_admin else ""))
    else:
        click.echo(f"DENY {label}: {decision.reason} ({decision.message})")


@click.group('usage')
def usage_group():
    """Usage counter maintenance."""


@usage_group.command('reset-monthly')
@click.option('--tenant-id', type=int, help='Only this tenant (default: all)')
@with_appcontext
def reset_monthly(tenant_id):
    """Zero the per-month usage counters."""
    count = subscription_service.reset_monthly_usage(tenant_id)
    click.echo(f"PASS Reset monthly usage for {count} subscription(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)  # Multi-tenant management
    app.cli.add_command(users_group)
    app.cli.add_command(team_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(plans_group)
    app.cli.add_command(access_group)
    app.cli.add_command(usage_group)
