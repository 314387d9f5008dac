# Overview: Flask CLI command groups for bootstrap, inspection, and stock loading.

# backend/emrs/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: default departments, request-type routing and one user per role.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Departments and routing:
# - python -m flask departments list
# - python -m flask departments create --name "Stores" --description "Central store"
# - python -m flask departments map-type ppe 2
#   Route requests of type "ppe" to department 2.
#
# Users:
# - python -m flask users list [--department-id 1]
# - python -m flask users create --name "Jane" --email jane@emrs.local --password "Password123!" --role engineer --department-id 1
#
# Inventory:
# - python -m flask items create --name "Gloves" --uom pair
# - python -m flask items create --name "Drill" --asset
# - python -m flask items stock 1 50 [--location-id 1]
#   Load opening stock for a consumable.
# - python -m flask assets create 2 --tag DRL-001 [--location-id 1]
# - python -m flask equipment create --name "Generator G1" --department-id 1 [--location "Yard A"]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Department, User
from .models.org import ROLES
from .services import department_service, equipment_service, inventory_service
from .services.auth_service import create_user
from .validation import EmrsError


DEFAULT_PASSWORD = "Password123!"

DEFAULT_DEPARTMENTS = [
    ("Operations", "Field operations"),
    ("Stores", "Central store and inventory"),
    ("Maintenance", "Equipment maintenance"),
    ("Logistics", "Transport and dispatch"),
    ("HSE", "Health, safety and environment"),
]

DEFAULT_ROUTING = {
    "ppe": "HSE",
    "material": "Stores",
    "equipment": "Stores",
    "transport": "Logistics",
    "maintenance": "Maintenance",
}


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize EMRS: departments, request-type routing and default users.

    Creates:
    - Departments: Operations, Stores, Maintenance, Logistics, HSE
    - Routing: ppe->HSE, material/equipment->Stores, transport->Logistics,
      maintenance->Maintenance
    - Users: admin, manager, engineer, staff @emrs.local (Operations)
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing EMRS...")

    departments = {}
    for name, description in DEFAULT_DEPARTMENTS:
        dept = db.session.query(Department).filter_by(name=name).first()
        if not dept:
            dept = department_service.create_department(name, description)
            click.echo(f"PASS Created department: {dept.name} (ID: {dept.id})")
        departments[name] = dept

    for request_type, dept_name in DEFAULT_ROUTING.items():
        department_service.map_request_type(request_type, departments[dept_name].id)
    click.echo(f"PASS Routed {len(DEFAULT_ROUTING)} request types")

    operations = departments["Operations"]
    for role in ROLES:
        email = f"{role}@emrs.local"
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        try:
            create_user(
                name=role.capitalize(),
                email=email,
                password=DEFAULT_PASSWORD,
                role=role,
                department_id=None if role == "admin" else operations.id,
            )
            click.echo(f"PASS Created user: {email} with role '{role}'")
        except EmrsError as e:
            click.echo(f"FAIL Failed to create user '{email}': {e.message}")

    click.echo("\n" + "="*60)
    click.echo("DONE EMRS Initialized Successfully!")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    for role in ROLES:
        click.echo(f"   {role:<9} -> {role}@emrs.local / {DEFAULT_PASSWORD}")
    click.echo("")


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

    click.echo("PASS Database reset complete")


@click.group('departments')
def departments_group():
    """Department and request-type routing commands."""


@departments_group.command('list')
@with_appcontext
def list_departments_cli():
    """List departments and the request types routed to each."""
    routing = {}
    for mapping in department_service.list_request_type_mappings():
        routing.setdefault(mapping.department_id, []).append(mapping.request_type)

    departments = department_service.list_departments()
    if not departments:
        click.echo("No departments found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<25} {'Request types'}")
    click.echo("="*70)
    for dept in departments:
        types = ", ".join(sorted(routing.get(dept.id, []))) or "-"
        click.echo(f"{dept.id:<5} {dept.name:<25} {types}")
    click.echo("="*70 + "\n")


@departments_group.command('create')
@click.option('--name', prompt=True, help='Department name')
@click.option('--description', default=None, help='Description')
@with_appcontext
def create_department_cli(name, description):
    try:
        dept = department_service.create_department(name, description)
        click.echo(f"PASS Created department: {dept.name} (ID: {dept.id})")
    except EmrsError as e:
        click.echo(f"FAIL {e.message}")


@departments_group.command('map-type')
@click.argument('request_type')
@click.argument('department_id', type=int)
@with_appcontext
def map_type_cli(request_type, department_id):
    """Route REQUEST_TYPE to DEPARTMENT_ID."""
    try:
        department_service.map_request_type(request_type, department_id)
        click.echo(f"PASS '{request_type}' requests now go to department {department_id}")
    except EmrsError as e:
        click.echo(f"FAIL {e.message}")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--department-id', type=int, default=None, help='Department ID')
@with_appcontext
def create_user_cli(name, email, password, role, department_id):
    """
    Create a new user.

    Password must meet strength requirements:
    8+ chars, uppercase, lowercase, digit, special char.
    """
    try:
        user = create_user(name=name, email=email, password=password, role=role, department_id=department_id)
        click.echo(f"PASS Created user: {user.email} with role '{role}' (ID: {user.id})")
        click.echo("SECURITY Password securely hashed with bcrypt")
    except EmrsError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")


@users_group.command('list')
@click.option('--department-id', type=int, help='Filter by department ID')
@with_appcontext
def list_users(department_id):
    """List all users with their role and department."""
    query = db.session.query(User)
    if department_id:
        query = query.filter_by(department_id=department_id)

    users = query.order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Name':<20} {'Email':<30} {'Role':<10} {'Dept':<15} {'Active'}")
    click.echo("="*100)
    for user in users:
        dept = user.department.name if user.department else "-"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<20} {user.email:<30} {user.role:<10} {dept:<15} {active_str}")
    click.echo("="*100 + "\n")


@click.group('items')
def items_group():
    """Item master and stock commands."""


@items_group.command('create')
@click.option('--name', prompt=True, help='Item name')
@click.option('--uom', default=None, help='Default unit of measure')
@click.option('--asset', 'is_asset', is_flag=True, help='Track as individual assets (non-consumable)')
@with_appcontext
def create_item_cli(name, uom, is_asset):
    try:
        item = inventory_service.create_item(name, is_consumable=not is_asset, default_uom=uom)
        kind = "asset-tracked" if is_asset else "consumable"
        click.echo(f"PASS Created {kind} item: {item.name} (ID: {item.id})")
    except EmrsError as e:
        click.echo(f"FAIL {e.message}")


@items_group.command('stock')
@click.argument('item_id', type=int)
@click.argument('qty', type=int)
@click.option('--location-id', type=int, default=1, show_default=True)
@with_appcontext
def load_stock_cli(item_id, qty, location_id):
    """Load QTY units of consumable ITEM_ID as opening stock."""
    try:
        row = inventory_service.receive_opening_stock(item_id, location_id, qty)
        click.echo(f"PASS Item {item_id} at location {location_id}: on hand {row.on_hand_qty}")
    except EmrsError as e:
        click.echo(f"FAIL {e.message}")


@click.group('assets')
def assets_group():
    """Asset commands."""


@assets_group.command('create')
@click.argument('item_id', type=int)
@click.option('--tag', default=None, help='Asset tag')
@click.option('--serial', 'serial_number', default=None, help='Serial number')
@click.option('--location-id', type=int, default=None)
@with_appcontext
def create_asset_cli(item_id, tag, serial_number, location_id):
    try:
        asset = inventory_service.create_asset(item_id, tag=tag, serial_number=serial_number, location_id=location_id)
        click.echo(f"PASS Created asset {asset.id} for item {item_id} (status {asset.status})")
    except EmrsError as e:
        click.echo(f"FAIL {e.message}")


@click.group('equipment')
def equipment_group():
    """Equipment catalog commands."""


@equipment_group.command('create')
@click.option('--name', prompt=True, help='Equipment name')
@click.option('--department-id', type=int, default=None)
@click.option('--serial', 'serial_number', default=None)
@click.option('--location', default=None, help='Where the unit is kept')
@with_appcontext
def create_equipment_cli(name, department_id, serial_number, location):
    try:
        equipment = equipment_service.create_equipment(
            name, department_id=department_id, serial_number=serial_number, location=location
        )
        click.echo(f"PASS Created equipment: {equipment.name} (ID: {equipment.id})")
    except EmrsError as e:
        click.echo(f"FAIL {e.message}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(departments_group)
    app.cli.add_command(users_group)
    app.cli.add_command(items_group)
    app.cli.add_command(assets_group)
    app.cli.add_command(equipment_group)
