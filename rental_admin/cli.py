# rental_admin/cli.py
import click
from flask.cli import with_appcontext
from werkzeug.security import generate_password_hash

from .extensions import db
from .model import User
from .services import shipping_service


@click.command("create-admin")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--name", required=True)
@with_appcontext
def create_admin(email, password, name):
    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        click.echo("Email already exists")
        return
    u = User(email=email, name=name, password_hash=generate_password_hash(password), role="admin")
    db.session.add(u)
    db.session.commit()
    click.echo(f"Admin created: {u.id} {u.email}")


@click.command("seed-shipping")
@with_appcontext
def seed_shipping():
    """Create the default shipping methods that are missing."""
    created = shipping_service.seed_default_methods()
    click.echo(f"Shipping methods created: {created}")


def register_cli(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(seed_shipping)
