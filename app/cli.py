"""CLI tools for listing API administration."""

import json

import click
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import AppError
from app.db.enums import UserRole, UserStatus
from app.db.models import User
from app.db.session import SessionLocal
from app.db.types import utcnow


@click.group()
def cli():
    """Listing API CLI tools."""
    pass


@cli.command()
@click.option("--name", required=True, help="Display name")
@click.option("--email", required=True, help="Login email address")
@click.option("--phone", default=None, help="Mobile number (10-digit Indian or +91...)")
@click.option(
    "--role",
    type=click.Choice([r.value for r in UserRole]),
    default=UserRole.USER.value,
    show_default=True,
)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--specialization", default=None, help="Agent routing specialization, e.g. 'residential,villa'")
@click.option("--rating", type=float, default=None, help="Agent rating (0-5)")
def create_user(
    name: str,
    email: str,
    phone: str | None,
    role: str,
    password: str,
    specialization: str | None,
    rating: float | None,
):
    """
    Create an active, fully verified account (admins and agents are not self-service).

    Example:
        python -m app.cli create-user --name "Asha Rao" --email asha@example.com --role agent
    """
    from app.core.security import hash_password
    from app.utils.normalization import normalize_email, normalize_phone

    db = SessionLocal()
    try:
        email = normalize_email(email)
        try:
            phone = normalize_phone(phone) if phone else None
        except ValueError as e:
            click.echo(f"❌ {e}")
            return

        existing = db.query(User).filter(User.email == email).first()
        if existing:
            click.echo(f"❌ User already exists: {email}")
            return

        now = utcnow()
        user = User(
            name=name.strip(),
            email=email,
            phone=phone,
            password_hash=hash_password(password),
            user_type=role,
            status=UserStatus.ACTIVE.value,
            email_verified_at=now,
            phone_verified_at=now if phone else None,
            specialization=specialization if role == UserRole.AGENT.value else None,
            agent_rating=rating if role == UserRole.AGENT.value else None,
        )
        db.add(user)
        db.commit()

        click.echo(f"✓ Created {role}: {email}")
        click.echo(f"  ID: {user.id}")

    except SQLAlchemyError as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all sessions for a user by bumping their token_version.

    Example:
        python -m app.cli revoke-sessions --email "user@example.com"
    """
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if not user:
            click.echo(f"❌ User not found: {email}")
            return

        old_version = user.token_version
        user.token_version += 1
        db.commit()

        click.echo(f"✓ Revoked all sessions for {email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")

    except SQLAlchemyError as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.argument("key")
@click.argument("value")
@click.option(
    "--type",
    "setting_type",
    type=click.Choice(["string", "boolean", "number", "json"]),
    default="string",
    show_default=True,
)
@click.option("--description", default=None)
def set_setting(key: str, value: str, setting_type: str, description: str | None):
    """
    Create or overwrite a system setting.

    Example:
        python -m app.cli set-setting auto_assign_agents true --type boolean
    """
    from app.services import system_setting_service

    db = SessionLocal()
    try:
        row = system_setting_service.set_value(
            db, key, value, setting_type=setting_type, description=description
        )
        click.echo(f"✓ {row.setting_key} = {row.setting_value} ({row.setting_type})")
    except (ValueError, SQLAlchemyError) as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
def dpdpa_cleanup():
    """
    Delete audit records past their retention deadline.

    Low/medium severity, non legal-obligation records only. Intended for a
    daily cron.

    Example:
        python -m app.cli dpdpa-cleanup
    """
    from app.services import audit_service

    db = SessionLocal()
    try:
        result = audit_service.sweep_expired(db)
        click.echo(f"✓ Deleted {result['deleted_count']} expired audit records")
        click.echo(f"  Swept at: {result['swept_at'].isoformat()}")
    except (AppError, SQLAlchemyError) as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
def compliance_report():
    """
    Print the DPDPA compliance report as JSON.

    Example:
        python -m app.cli compliance-report > report.json
    """
    from app.services import audit_service

    db = SessionLocal()
    try:
        report = audit_service.compliance_report(db)
        click.echo(json.dumps(report, indent=2, default=str))
    finally:
        db.close()


if __name__ == "__main__":
    cli()
