"""CLI tools for Traffic administration."""

from pathlib import Path

import click
from sqlalchemy.exc import SQLAlchemyError

from traffic_api.core.errors import ServiceError
from traffic_api.db.enums import Role
from traffic_api.db.models import User
from traffic_api.db.session import SessionLocal


@click.group()
def cli():
    """Traffic CLI tools."""
    pass


@cli.command()
@click.option("--email", required=True, help="User email address")
@click.option("--name", "full_name", default=None, help="Display name")
@click.option(
    "--role",
    type=click.Choice([role.value for role in Role]),
    default=Role.PARTNER.value,
    show_default=True,
)
def create_user(email: str, full_name: str | None, role: str):
    """
    Create a user record.

    Example:
        python -m traffic_api.cli create-user --email "ops@example.com" --role admin
    """
    db = SessionLocal()
    try:
        email = email.strip().lower()
        if db.query(User).filter(User.email == email).first():
            raise click.ClickException(f"User already exists: {email}")

        user = User(email=email, full_name=full_name, role=role)
        db.add(user)
        db.commit()

        click.echo(f"✓ Created user {email}")
        click.echo(f"  ID: {user.id}")
        click.echo(f"  Role: {role}")
    except SQLAlchemyError as e:
        db.rollback()
        raise click.ClickException(str(e))
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all sessions for a user by bumping their token_version.

    Example:
        python -m traffic_api.cli revoke-sessions --email "user@example.com"
    """
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if not user:
            raise click.ClickException(f"User not found: {email}")

        old_version = user.token_version
        user.token_version += 1
        db.commit()

        click.echo(f"✓ Revoked all sessions for {email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")
    except SQLAlchemyError as e:
        db.rollback()
        raise click.ClickException(str(e))
    finally:
        db.close()


@cli.command()
@click.option("--email", default=None, help="Only merge this customer's conversations")
def merge_conversations(email: str | None):
    """
    Merge duplicate chat conversations that share a customer email.

    Without --email every duplicated email is processed.

    Example:
        python -m traffic_api.cli merge-conversations --email "bob@example.com"
    """
    from traffic_api.services import conversation_merge_service

    db = SessionLocal()
    try:
        if email and email.strip():
            result = conversation_merge_service.merge_conversations_for_email(db, email)
        else:
            result = conversation_merge_service.merge_all_duplicates(db)
            click.echo(f"  Emails processed: {result.emails_processed}")
        db.commit()

        click.echo(f"✓ Conversations merged: {result.conversations_merged}")
        click.echo(f"  Messages moved: {result.messages_moved}")
    except ServiceError as e:
        db.rollback()
        raise click.ClickException(e.message)
    finally:
        db.close()


@cli.command()
@click.option("--audience-id", required=True, help="Audience id (e.g. manual_...)")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Destination file (default: the export filename in the current directory)",
)
def export_audience(audience_id: str, output: Path | None):
    """
    Export an audience's contacts to CSV, bypassing owner scoping.

    Example:
        python -m traffic_api.cli export-audience --audience-id manual_1234
    """
    from traffic_api.services import contact_export_service

    db = SessionLocal()
    try:
        export = contact_export_service.export_audience_csv(
            db, audience_id=audience_id, user_id=None, acts_as_admin=True
        )
    except ServiceError as e:
        raise click.ClickException(e.message)
    finally:
        db.close()

    destination = output or Path(export.filename)
    destination.write_text(export.content, encoding="utf-8")
    click.echo(f"✓ Exported {export.row_count} contacts to {destination}")


if __name__ == "__main__":
    cli()
