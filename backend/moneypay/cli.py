# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/moneypay/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Account inspection/bootstrap:
# - python -m flask accounts list [--role agent]
#   List accounts with role, balance and status.
# - python -m flask accounts create --name "Head Office" --phone "+211900000001" --role admin
#   Register an account (prompts if options are omitted).
# - python -m flask accounts suspend 12 / python -m flask accounts unsuspend 12
#   Block or restore an account.
#
# Commission configuration:
# - python -m flask commission show
#   Print the flat rule and both tier tables.
# - python -m flask commission set-flat --percent 1 --send-percent 2 --withdraw-percent 1
#   Update the flat rule (omitted values unchanged).
# - python -m flask commission set-tiers --send tiers.json --withdraw tiers.json
#   Replace tier tables from JSON files holding [{"min_amount", "agent_percent", "company_percent"}, ...].
#
# State settings:
# - python -m flask states list
# - python -m flask states create --name "Central Equatoria" --percent 2.5
#
# Maintenance:
# - python -m flask ledger reconcile --older-than 300
#   Resolve ledger intents left open by a crashed process.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import LedgerError
from .models.accounts import VALID_ROLES
from .money import cents_to_str
from .services import account_service, commission_service
from .services.concurrency import reconcile_open_intents


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("OK Database reset")


# =============================================================================
# ACCOUNTS
# =============================================================================

@click.group('accounts')
def accounts_group():
    """Account inspection and bootstrap."""


@accounts_group.command('list')
@click.option('--role', type=click.Choice(VALID_ROLES), help='Filter by role')
@with_appcontext
def list_accounts(role):
    """List accounts with role, balance and status."""
    accounts = account_service.list_accounts(role)
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Role':<7} {'Name':<24} {'Phone':<18} {'Balance':>14} {'Agent #':<8} {'Status'}")
    click.echo("="*90)
    for account in accounts:
        status = "SUSPENDED" if account.is_suspended else "active"
        click.echo(
            f"{account.id:<5} {account.role:<7} {account.name[:24]:<24} {account.phone:<18} "
            f"{cents_to_str(account.balance_cents):>14} {account.agent_code or '-':<8} {status}"
        )
    click.echo("="*90 + "\n")


@accounts_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--phone', prompt=True, help='Phone number (unique)')
@click.option('--role', type=click.Choice(VALID_ROLES), default='user', show_default=True, help='Role')
@click.option('--email', default=None, help='Email address')
@click.option('--state-id', type=int, default=None, help='State setting (admins only)')
@with_appcontext
def create_account_cli(name, phone, role, email, state_id):
    """Register an account with a zero balance."""
    try:
        account = account_service.create_account(name, phone, role, email=email, state_id=state_id)
    except LedgerError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"OK Created {account.role} #{account.id} ({account.phone})")
    if account.agent_code:
        click.echo(f"   Agent number: {account.agent_code}")


@accounts_group.command('suspend')
@click.argument('account_id', type=int)
@with_appcontext
def suspend_account(account_id):
    try:
        account_service.set_suspended(account_id, True)
    except LedgerError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"OK Account #{account_id} suspended")


@accounts_group.command('unsuspend')
@click.argument('account_id', type=int)
@with_appcontext
def unsuspend_account(account_id):
    try:
        account_service.set_suspended(account_id, False)
    except LedgerError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"OK Account #{account_id} reactivated")


# =============================================================================
# COMMISSION
# =============================================================================

@click.group('commission')
def commission_group():
    """Commission rule configuration."""


@commission_group.command('show')
@with_appcontext
def show_commission():
    config = commission_service.get_commission_config()
    flat = config["flat"]
    if flat:
        click.echo(
            f"Flat: percent={flat['percent']} send={flat['send_percent']} withdraw={flat['withdraw_percent']}"
        )
    else:
        click.echo("Flat: not configured")

    for label in ("send", "withdraw"):
        configured = config[f"{label}_tiers_configured"]
        click.echo(f"\n{label.title()} tiers ({'configured' if configured else 'defaults, not applied'}):")
        for tier in config[f"{label}_tiers"]:
            click.echo(
                f"  >= {tier['min_amount']:>12}  agent {tier['agent_percent']:>6}%  company {tier['company_percent']:>6}%"
            )


@commission_group.command('set-flat')
@click.option('--percent', type=float, default=None, help='Agent withdraw percent')
@click.option('--send-percent', type=float, default=None, help='Company send percent')
@click.option('--withdraw-percent', type=float, default=None, help='Company withdraw percent')
@with_appcontext
def set_flat(percent, send_percent, withdraw_percent):
    rule = commission_service.set_flat_commission(percent, send_percent, withdraw_percent)
    click.echo(f"OK Flat commission: {rule.to_dict()}")


@commission_group.command('set-tiers')
@click.option('--send', 'send_file', type=click.File('r'), default=None, help='JSON file with send tiers')
@click.option('--withdraw', 'withdraw_file', type=click.File('r'), default=None, help='JSON file with withdraw tiers')
@with_appcontext
def set_tiers(send_file, withdraw_file):
    try:
        send_tiers = json.load(send_file) if send_file else None
        withdraw_tiers = json.load(withdraw_file) if withdraw_file else None
        commission_service.set_tiered_commission(send_tiers, withdraw_tiers)
    except json.JSONDecodeError as e:
        click.echo(f"FAIL Invalid JSON: {e}")
        return
    except LedgerError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return
    click.echo("OK Tier tables updated")


# =============================================================================
# STATES
# =============================================================================

@click.group('states')
def states_group():
    """State commission settings."""


@states_group.command('list')
@with_appcontext
def list_states():
    states = commission_service.list_states()
    if not states:
        click.echo("No states configured.")
        return
    for state in states:
        click.echo(f"{state.id:<5} {state.name:<30} {state.commission_percent_bps / 100:>6}%")


@states_group.command('create')
@click.option('--name', prompt=True, help='State name')
@click.option('--percent', type=float, default=0.0, show_default=True, help='Commission percent')
@with_appcontext
def create_state(name, percent):
    try:
        state = commission_service.create_state(name, percent)
    except LedgerError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"OK Created state #{state.id} {state.name}")


# =============================================================================
# LEDGER MAINTENANCE
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Ledger maintenance commands."""


@ledger_group.command('reconcile')
@click.option('--older-than', type=int, default=300, show_default=True, help='Only intents older than N seconds')
@with_appcontext
def reconcile(older_than):
    summary = reconcile_open_intents(older_than_seconds=older_than)
    click.echo(f"OK Reconciled: {summary['committed']} committed, {summary['aborted']} aborted")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(commission_group)
    app.cli.add_command(states_group)
    app.cli.add_command(ledger_group)
