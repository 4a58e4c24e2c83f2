"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-user: Create a user and add it to an organization
"""

import click
import re
from sqlalchemy.exc import SQLAlchemyError

from pharmapos.database import create_all, get_session
from pharmapos.models import AppUser, Organization, Membership, PosRole


def _slugify(name):
    slug = re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')
    return slug or 'organization'


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all database tables."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-user')
    @click.option('--email', prompt=True, help='User email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='User password')
    @click.option('--organization', 'organization_name', prompt=True,
                  help='Organization name (created if it does not exist)')
    @click.option('--role', type=click.Choice([r.value for r in PosRole], case_sensitive=False),
                  default=PosRole.ADMIN.value, show_default=True, help='Role in the organization')
    @click.option('--full-name', default=None, help='Display name')
    def create_user(email, password, organization_name, role, full_name):
        """Create a user (or reuse an existing one) and grant it a role in an organization."""
        email = email.strip().lower()
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            click.echo(click.style('Invalid email. Use user@example.com', fg='red'))
            return

        if len(password) < 6:
            click.echo(click.style('Password must be at least 6 characters.', fg='red'))
            return

        db_session = get_session()
        try:
            slug = _slugify(organization_name)
            organization = db_session.query(Organization).filter_by(slug=slug).first()
            if not organization:
                organization = Organization(slug=slug, name=organization_name.strip())
                db_session.add(organization)
                db_session.flush()

            user = db_session.query(AppUser).filter_by(email=email).first()
            if not user:
                user = AppUser(email=email, full_name=full_name)
                db_session.add(user)
            user.set_password(password)
            db_session.flush()

            membership = db_session.query(Membership).filter_by(
                user_id=user.id, organization_id=organization.id
            ).first()
            if membership:
                membership.role = role.upper()
                membership.active = True
            else:
                db_session.add(Membership(
                    user_id=user.id, organization_id=organization.id, role=role.upper(), active=True
                ))

            db_session.commit()
        except SQLAlchemyError as e:
            db_session.rollback()
            click.echo(click.style(f'Error creating user: {e}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style('User ready.', fg='green', bold=True))
        click.echo(f'   Email: {email}')
        click.echo(f'   Organization: {organization.name} (id {organization.id})')
        click.echo(f'   Role: {role.upper()}')
