# app/cli.py
from __future__ import annotations

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Team, User
from .utils.passwords import hash_password, password_problems


@click.command("create-admin")
@click.option("--email", required=True, help="Login email for the admin.")
@click.option("--name", default="Administrator", show_default=True)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--team", "team_name", default=None, help="Team to attach the admin to (created if missing).")
@with_appcontext
def create_admin_command(email: str, name: str, password: str, team_name: str | None) -> None:
    """Create an admin user, or reset an existing one to admin."""
    email = email.strip().lower()

    problems = password_problems(password)
    if problems:
        raise click.BadParameter(" ".join(problems), param_hint="--password")

    team = None
    if team_name:
        team = Team.query.filter(Team.name == team_name.strip()).first()
        if team is None:
            team = Team(name=team_name.strip())
            db.session.add(team)

    user = User.query.filter(db.func.lower(User.email) == email).first()
    created = user is None
    if created:
        user = User(email=email)
        db.session.add(user)

    user.name = name.strip() or "Administrator"
    user.role = "admin"
    user.is_active = True
    user.password_hash = hash_password(password)
    if team is not None:
        user.team = team

    db.session.commit()

    click.echo(f"Admin {'created' if created else 'updated'}: {email}")
