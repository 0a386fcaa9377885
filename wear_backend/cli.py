import os

import click
from flask import current_app
from sqlalchemy import select

from .auth import create_or_promote_admin, validate_password
from .extensions import db
from .helpers import is_valid_email, normalize_email
from .models import Category, Product
from .uploads import filename_from_url, list_stored_files

DEFAULT_CATEGORIES = (
    ("Women", "women", "Women's clothing and fashion"),
    ("Men", "men", "Men's clothing and fashion"),
    ("Accessories", "accessories", "Fashion accessories and add-ons"),
    ("Footwear", "footwear", "Shoes, boots, and footwear"),
    ("Jewelry", "jewelry", "Jewelry and accessories"),
    ("Activewear", "activewear", "Athletic and sportswear"),
)


def seed_default_categories():
    created, skipped = [], []
    for name, slug, description in DEFAULT_CATEGORIES:
        if db.session.scalar(select(Category.id).where(Category.slug == slug)):
            skipped.append(name)
            continue
        db.session.add(Category(name=name, slug=slug, description=description, is_active=True))
        created.append(name)
    db.session.commit()
    return created, skipped


def find_unused_images():
    referenced = set()
    for image_url, images in db.session.execute(select(Product.image_url, Product.images)):
        for url in [image_url, *(images or [])]:
            filename = filename_from_url(url)
            if filename:
                referenced.add(filename)
    return [name for name in list_stored_files() if name not in referenced]


def register_cli(app):
    @app.cli.command("init-db")
    @click.option("--reset", is_flag=True, help="Drop every table before creating them.")
    def init_db_command(reset):
        """Create the database tables."""
        if reset:
            db.drop_all()
            click.echo("Dropped all tables.")
        db.create_all()
        click.echo("Database tables are ready.")

    @app.cli.command("seed-categories")
    def seed_categories_command():
        """Insert the default storefront categories."""
        created, skipped = seed_default_categories()
        for name in created:
            click.echo(f"Created category: {name}")
        for name in skipped:
            click.echo(f"Category {name} already exists, skipping")
        click.echo(f"Done: {len(created)} created, {len(skipped)} skipped.")

    @app.cli.command("create-admin")
    @click.option("--email", default=lambda: os.getenv("ADMIN_EMAIL", ""), prompt="Admin email")
    @click.option(
        "--password",
        default=lambda: os.getenv("ADMIN_PASSWORD", ""),
        prompt=True,
        hide_input=True,
    )
    @click.option("--first-name", default=lambda: os.getenv("ADMIN_FIRST_NAME", "Admin"))
    @click.option("--last-name", default=lambda: os.getenv("ADMIN_LAST_NAME", "User"))
    def create_admin_command(email, password, first_name, last_name):
        """Create an admin account, or promote an existing user."""
        email = normalize_email(email)
        if not is_valid_email(email):
            raise click.BadParameter("Invalid email format", param_hint="--email")
        password_error = validate_password(password)
        if password_error:
            raise click.BadParameter(password_error, param_hint="--password")

        user, created = create_or_promote_admin(email, password, first_name, last_name)
        if created:
            click.echo(f"Created admin account {user.email}")
        else:
            click.echo(f"Promoted existing user {user.email} to admin")

    @app.cli.command("cleanup-images")
    @click.option("--dry-run", is_flag=True, help="List unused files without deleting them.")
    def cleanup_images_command(dry_run):
        """Remove uploaded files that no product references."""
        unused = find_unused_images()
        if not unused:
            click.echo("No unused images found.")
            return

        folder = current_app.config["UPLOAD_FOLDER"]
        for filename in unused:
            if dry_run:
                click.echo(f"Would delete {filename}")
                continue
            try:
                os.remove(os.path.join(folder, filename))
            except OSError as exc:
                current_app.logger.warning("Could not delete %s: %s", filename, exc)
                continue
            click.echo(f"Deleted {filename}")
        click.echo(f"{len(unused)} unused image(s) {'found' if dry_run else 'processed'}.")
