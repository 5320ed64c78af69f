"""CLI tools for clinic platform administration."""

import click
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from clinic_api.core.config import settings
from clinic_api.core.errors import AppError
from clinic_api.core.migrations import MigrationError, ensure_schema
from clinic_api.core.security import hash_password
from clinic_api.db.enums import Role
from clinic_api.db.models import User
from clinic_api.db.session import SessionLocal, engine
from clinic_api.schemas.saas import ClinicAdminCreate, ClinicCreate
from clinic_api.services import saas_service


@click.group()
def cli():
    """Clinic API CLI tools."""
    pass


@cli.command()
def migrate():
    """Create missing tables and add missing columns."""
    try:
        report = ensure_schema(engine)
    except MigrationError as e:
        raise click.ClickException(str(e))

    if not report.changed:
        click.echo("✓ Schema up to date")
        return
    for table in report.created_tables:
        click.echo(f"✓ Created table {table}")
    for column in report.added_columns:
        click.echo(f"✓ Added column {column}")


@cli.command("create-super-admin")
@click.option("--username", default=lambda: settings.SEED_SUPER_ADMIN_USERNAME, help="Login name")
@click.option("--name", default="Platform Admin", help="Display name")
@click.option("--email", default=None, help="Email address")
@click.option(
    "--password",
    default=lambda: settings.SEED_SUPER_ADMIN_PASSWORD or None,
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Password (prompted when not configured)",
)
def create_super_admin(username: str, name: str, email: str | None, password: str):
    """
    Create a platform super admin (no clinic).

    Example:
        clinic-api create-super-admin --username root
    """
    if len(password) < 6:
        raise click.ClickException("Password must have at least 6 characters")

    db = SessionLocal()
    try:
        existing = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
        if existing:
            raise click.ClickException(f"User '{username}' already exists")

        user = User(
            name=name,
            username=username,
            email=email,
            password_hash=hash_password(password),
            role=Role.SUPER_ADMIN.value,
            clinic_id=None,
        )
        db.add(user)
        db.commit()
        click.echo(f"✓ Created super admin: {username} (id {user.id})")
    except SQLAlchemyError as e:
        db.rollback()
        raise click.ClickException(f"Database error: {e}")
    finally:
        db.close()


@cli.command("create-clinic")
@click.option("--name", required=True, help="Clinic name")
@click.option("--slug", required=True, help="URL-friendly slug (lowercase, hyphens)")
@click.option("--plan", "plan_tier", default="basic", help="Plan tier")
@click.option("--admin-name", required=True, help="First admin's display name")
@click.option("--admin-username", required=True, help="First admin's login name")
@click.option("--admin-email", default=None, help="First admin's email")
@click.option("--admin-password", prompt=True, hide_input=True, confirmation_prompt=True)
def create_clinic(
    name: str,
    slug: str,
    plan_tier: str,
    admin_name: str,
    admin_username: str,
    admin_email: str | None,
    admin_password: str,
):
    """
    Create a clinic and its owner clinic_admin in one transaction.

    Example:
        clinic-api create-clinic --name "Clinica A" --slug clinic-a \\
            --admin-name "Ana" --admin-username ana
    """
    try:
        data = ClinicCreate(
            name=name,
            slug=slug.lower().strip(),
            plan_tier=plan_tier,
            owner_email=admin_email,
            admin=ClinicAdminCreate(
                name=admin_name,
                username=admin_username,
                email=admin_email,
                password=admin_password,
            ),
        )
    except ValidationError as e:
        raise click.ClickException(f"Invalid input: {e}")

    db = SessionLocal()
    try:
        clinic, admin = saas_service.create_clinic(db, data)
        click.echo(f"✓ Created clinic: {clinic.name}")
        click.echo(f"  ID: {clinic.id}")
        click.echo(f"  Slug: {clinic.slug}")
        click.echo(f"✓ Created clinic_admin {admin.username} (id {admin.id})")
    except AppError as e:
        raise click.ClickException(e.message)
    except SQLAlchemyError as e:
        db.rollback()
        raise click.ClickException(f"Database error: {e}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
