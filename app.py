from flask import Flask, jsonify
from config import Config
from routes import health_bp, spaces_bp, bookings_bp, availability_bp, webhook_bp

from models import db
from flask_migrate import Migrate
from services.errors import BookingError
from utils.seed import seed_roles
from utils.auth_context import load_current_user
from utils.conversations import open_thread_for_confirmed_booking
from utils.events import booking_confirmed


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(spaces_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(availability_bp)
    app.register_blueprint(webhook_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Seed default roles at startup (safe & idempotent)
    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        seed_roles()

    # messaging starts a thread once an owner confirms
    booking_confirmed.connect(open_thread_for_confirmed_booking)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp


    register_cli(app)


    return app

#-------------------------
import click
from models.user import User, Role
from services import availability as ledger

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name="ADMIN").first()
        if not admin_role:
            admin_role = Role(name="ADMIN")
            db.session.add(admin_role)
            db.session.commit()

        if admin_role not in user.roles:
            user.roles.append(admin_role)
            db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("reconcile-ledger")
    @click.option("--space-id", type=int, default=None, help="Limit the sweep to one space.")
    def reconcile_ledger(space_id):
        """Re-sync BOOKED calendar days with confirmed bookings."""
        result = ledger.reconcile(space_id)
        click.echo(
            f"materialized={result['materialized']} released={result['released']}"
        )

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
