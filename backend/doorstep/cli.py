# Overview: Flask CLI command groups for bootstrap, coverage, agents and daily delivery runs.

# backend/doorstep/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Two areas, two agents and a handful of subscriptions for local testing.
#
# Coverage:
# - python -m flask coverage create-area --name North --codes 110001,110002
# - python -m flask coverage set-codes 1 --codes 110001,110005
#   Replace an area's postal codes; pending deliveries are re-resolved.
# - python -m flask coverage list
# - python -m flask coverage resolve 110001
#   Show which agent a delivery to this postal code would be assigned to.
#
# Agents:
# - python -m flask agents create --name Ravi --phone +919800000001 --area-id 1
# - python -m flask agents list [--all]
# - python -m flask agents reassign 3 --area-id 2
#   Move an agent to another area; pending deliveries are re-resolved.
# - python -m flask agents deactivate 3 --yes
#
# Deliveries (schedule `deliveries generate` once per day):
# - python -m flask deliveries generate [--date 2024-01-01]
# - python -m flask deliveries backfill --start 2024-01-01 --end 2024-01-07
# - python -m flask deliveries route 3 [--date 2024-01-01]
#   Print an agent's optimized visiting order.
# - python -m flask deliveries summary [--start ...] [--end ...]

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .errors import DeliveryCoreError
from .models import Agent, CoverageArea
from .services import (
    assignment_service,
    coverage_service,
    delivery_service,
    generation_service,
    reassignment_service,
    routing_service,
    subscription_service,
)
from .time_utils import parse_iso_date, today


def _parse_date_option(value):
    if value is None:
        return None
    try:
        return parse_iso_date(value)
    except ValueError:
        raise click.BadParameter(f"'{value}' is not an ISO date (YYYY-MM-DD)")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (no-op for tables that already exist)."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for sample data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Seed a small demo dataset (idempotent on area names).

    Creates:
    - Areas: North {110001, 110002}, South {110003, 110004}
    - Agents: one per area
    - Three customers with DAILY, ALTERNATE and WEEKLY subscriptions starting today
    """
    click.echo("START Seeding demo data...")

    if db.session.query(CoverageArea).filter_by(name="North").first():
        click.echo("WARN  Demo data already present; nothing to do.")
        return

    try:
        north = coverage_service.create_area("North", ["110001", "110002"])
        south = coverage_service.create_area("South", ["110003", "110004"])
        click.echo(f"PASS Created areas: {north.name} (ID: {north.id}), {south.name} (ID: {south.id})")

        a1 = coverage_service.create_agent("Asha", "+910000000001", north.id)
        a2 = coverage_service.create_agent("Bilal", "+910000000002", south.id)
        click.echo(f"PASS Created agents: {a1.name} (ID: {a1.id}), {a2.name} (ID: {a2.id})")

        start = today()
        demo = [
            (101, "110001", 28.6448, 77.2167, "DAILY"),
            (102, "110002", 28.6519, 77.2315, "ALTERNATE"),
            (103, "110003", 28.6129, 77.2295, "WEEKLY"),
        ]
        for customer_id, code, lat, lng, recurrence in demo:
            address = subscription_service.create_address(
                customer_id,
                line1=f"{customer_id} Demo Street",
                city="New Delhi",
                postal_code=code,
                latitude=lat,
                longitude=lng,
            )
            sub = subscription_service.create_subscription(
                customer_id,
                address.id,
                recurrence,
                start,
                [{"product_id": 1, "product_name": "Milk 1L", "unit": "L", "quantity": 1, "unit_price_cents": 6400}],
            )
            click.echo(f"PASS Created {recurrence} subscription {sub.id} for customer {customer_id}")

    except DeliveryCoreError as e:
        click.echo(f"FAIL Seeding failed: {e.message}")
        return

    click.echo("PASS Demo data ready. Run 'python -m flask deliveries generate' next.")


@click.group('coverage')
def coverage_group():
    """Coverage area inspection and edits."""


@coverage_group.command('create-area')
@click.option('--name', required=True, help='Unique area name')
@click.option('--codes', required=True, help='Comma-separated postal codes')
@with_appcontext
def create_area_cli(name, codes):
    try:
        area = coverage_service.create_area(name, codes)
        click.echo(f"PASS Created area '{area.name}' (ID: {area.id}) with {len(area.postal_codes)} postal codes")
    except DeliveryCoreError as e:
        click.echo(f"FAIL {e.code}: {e.message}")


@coverage_group.command('set-codes')
@click.argument('area_id', type=int)
@click.option('--codes', required=True, help='Comma-separated postal codes (replaces the current set)')
@with_appcontext
def set_codes_cli(area_id, codes):
    try:
        result = reassignment_service.update_area_postal_codes(area_id, codes)
        click.echo(
            f"PASS Area {result.area.id} now covers {', '.join(result.area.postal_codes)}; "
            f"{result.reassigned_count} pending deliveries moved"
        )
    except DeliveryCoreError as e:
        click.echo(f"FAIL {e.code}: {e.message}")


@coverage_group.command('list')
@with_appcontext
def list_areas_cli():
    """
    List coverage areas with their postal codes and agents.

    Example:
        flask coverage list
    """
    areas = coverage_service.list_areas()
    if not areas:
        click.echo("No coverage areas found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Name':<20} {'Agents':<20} {'Postal codes'}")
    click.echo("="*100)

    for area in areas:
        agents = ",".join(str(a.id) for a in coverage_service.get_agents_by_area(area.id)) or "-"
        click.echo(f"{area.id:<5} {area.name:<20} {agents:<20} {', '.join(area.postal_codes)}")


@coverage_group.command('resolve')
@click.argument('postal_code')
@with_appcontext
def resolve_cli(postal_code):
    """
    Example:
        flask coverage resolve 110001
    """
    agent = assignment_service.find_agent_for_postal_code(postal_code)
    if agent is None:
        click.echo(f"WARN  No active agent covers {postal_code}; deliveries there stay unassigned")
        return
    click.echo(f"PASS {postal_code} -> agent {agent.id} ({agent.name}, area {agent.area_id})")


@click.group('agents')
def agents_group():
    """Delivery agent management."""


@agents_group.command('create')
@click.option('--name', required=True)
@click.option('--phone', required=True)
@click.option('--area-id', type=int, required=True)
@with_appcontext
def create_agent_cli(name, phone, area_id):
    try:
        agent = coverage_service.create_agent(name, phone, area_id)
        click.echo(f"PASS Created agent {agent.name} (ID: {agent.id}) in area {agent.area_id}")
    except DeliveryCoreError as e:
        click.echo(f"FAIL {e.code}: {e.message}")


@agents_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Show inactive agents too')
@with_appcontext
def list_agents_cli(show_all):
    agents = coverage_service.list_agents(active_only=not show_all)
    if not agents:
        click.echo("No agents found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<20} {'Phone':<18} {'Area':<8} {'Active'}")
    click.echo("="*80)
    for agent in agents:
        active_str = "Yes" if agent.is_active else "No"
        click.echo(f"{agent.id:<5} {agent.name:<20} {agent.phone:<18} {agent.area_id:<8} {active_str}")


@agents_group.command('reassign')
@click.argument('agent_id', type=int)
@click.option('--area-id', type=int, required=True, help='Target coverage area')
@with_appcontext
def reassign_agent_cli(agent_id, area_id):
    """
    Move an agent to another area and re-resolve their pending deliveries.

    Example:
        flask agents reassign 3 --area-id 2
    """
    try:
        result = reassignment_service.reassign_agent_area(agent_id, area_id)
        click.echo(
            f"PASS Agent {result.agent.id} now in area {result.agent.area_id}; "
            f"{result.reassigned_count} pending deliveries moved"
        )
    except DeliveryCoreError as e:
        click.echo(f"FAIL {e.code}: {e.message}")


@agents_group.command('deactivate')
@click.argument('agent_id', type=int)
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def deactivate_agent_cli(agent_id, yes):
    if not yes:
        click.confirm(f"WARN Deactivate agent {agent_id} and hand off their pending deliveries?", abort=True)
    try:
        result = reassignment_service.deactivate_agent(agent_id)
        click.echo(f"PASS Agent {result.agent.id} deactivated; {result.reassigned_count} pending deliveries moved")
    except DeliveryCoreError as e:
        click.echo(f"FAIL {e.code}: {e.message}")


@click.group('deliveries')
def deliveries_group():
    """Daily generation and route inspection."""


@deliveries_group.command('generate')
@click.option('--date', 'date_str', default=None, help='Target date (YYYY-MM-DD), default today')
@with_appcontext
def generate_cli(date_str):
    """
    Generate deliveries owed on one date. Safe to re-run.

    Example:
        flask deliveries generate --date 2024-01-01
    """
    day = _parse_date_option(date_str) or today()
    created = generation_service.generate_for_date(day)
    click.echo(f"PASS Generated {created} deliveries for {day.isoformat()}")


@deliveries_group.command('backfill')
@click.option('--start', 'start_str', required=True, help='First date (YYYY-MM-DD)')
@click.option('--end', 'end_str', required=True, help='Last date, inclusive (YYYY-MM-DD)')
@with_appcontext
def backfill_cli(start_str, end_str):
    try:
        per_day = generation_service.backfill_range(
            _parse_date_option(start_str), _parse_date_option(end_str)
        )
    except DeliveryCoreError as e:
        click.echo(f"FAIL {e.code}: {e.message}")
        return

    for day, created in per_day.items():
        click.echo(f"  {day.isoformat()}: {created}")
    click.echo(f"PASS Backfill created {sum(per_day.values())} deliveries over {len(per_day)} days")


@deliveries_group.command('route')
@click.argument('agent_id', type=int)
@click.option('--date', 'date_str', default=None, help='Route date (YYYY-MM-DD), default today')
@with_appcontext
def route_cli(agent_id, date_str):
    """
    Print an agent's optimized route.

    Example:
        flask deliveries route 3 --date 2024-01-01
    """
    if db.session.get(Agent, agent_id) is None:
        click.echo(f"FAIL Agent {agent_id} not found")
        return

    day = _parse_date_option(date_str) or today()
    plan = routing_service.get_optimized_route(agent_id, day)
    if not plan.stops:
        click.echo(f"No open deliveries for agent {agent_id} on {day.isoformat()}.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'#':<4} {'Delivery':<10} {'Postal code':<14} {'Status':<12} {'Coordinates'}")
    click.echo("="*80)
    for idx, stop in enumerate(plan.stops, start=1):
        delivery = stop.item
        coords = f"{stop.latitude:.5f},{stop.longitude:.5f}" if stop.has_coordinates else "-"
        click.echo(f"{idx:<4} {delivery.id:<10} {delivery.postal_code or '-':<14} {delivery.status:<12} {coords}")

    click.echo(f"\nTotal distance: {plan.total_distance_km} km, estimated {plan.estimated_minutes} min")


@deliveries_group.command('summary')
@click.option('--start', 'start_str', default=None, help='First date (YYYY-MM-DD), default 6 days ago')
@click.option('--end', 'end_str', default=None, help='Last date (YYYY-MM-DD), default today')
@with_appcontext
def summary_cli(start_str, end_str):
    end = _parse_date_option(end_str) or today()
    start = _parse_date_option(start_str) or (end - timedelta(days=6))
    try:
        summary = delivery_service.delivery_status_summary(start, end)
    except DeliveryCoreError as e:
        click.echo(f"FAIL {e.code}: {e.message}")
        return

    click.echo(f"Deliveries {summary['start']} .. {summary['end']}: {summary['total']} total")
    for status, count in summary["by_status"].items():
        click.echo(f"  {status:<12} {count}")
    click.echo(f"  {'UNASSIGNED':<12} {summary['unassigned']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(coverage_group)
    app.cli.add_command(agents_group)
    app.cli.add_command(deliveries_group)
