"""
Content Hierarchy Admin Application

Flask application for the exam content back-office. It wires together:
- Flask-SQLAlchemy models for the Exam -> ... -> Definition hierarchy
- Service layer for cascades, reordering and single-node writes
- Blueprint exposing the admin JSON API
"""

import os
import re
from datetime import datetime

import click
from flask import Flask, jsonify, request
from dotenv import load_dotenv
from sqlalchemy import text

from extensions import db, migrate, cache
import models  # noqa: F401

# Import our services and blueprints
from services import init_services
from blueprints import register_blueprints, get_blueprint_info

# Load environment variables
load_dotenv()

# Create Flask application
app = Flask(__name__)


def _normalize_sqlite_uri(uri: str, base_dir: str) -> str:
    if not uri or not uri.startswith("sqlite:///"):
        return uri
    raw_path = uri.replace("sqlite:///", "", 1)
    # If already absolute (drive letter or leading slash), leave as-is.
    if os.path.isabs(raw_path) or re.match(r"^[A-Za-z]:[\\/]", raw_path):
        return uri
    abs_path = os.path.abspath(os.path.join(base_dir, raw_path))
    return f"sqlite:///{abs_path.replace(os.sep, '/')}"


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Database configuration
default_db_path = os.path.join(app.instance_path, "content_hierarchy.db")
os.makedirs(app.instance_path, exist_ok=True)
raw_db_uri = os.getenv("DATABASE_URL", f"sqlite:///{default_db_path.replace(os.sep, '/')}")
app.config["SQLALCHEMY_DATABASE_URI"] = _normalize_sqlite_uri(raw_db_uri, app.root_path)
app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)

# Initialize extensions
db.init_app(app)
migrate.init_app(app, db)

# App configuration
app.secret_key = os.getenv("FLASK_KEY")
if not app.secret_key:
    app.logger.warning(
        "FLASK_KEY not set, using a default secret key. Please set this in your .env file for production."
    )
    app.secret_key = "content_hierarchy_development_key"

app.config.setdefault("CACHE_TYPE", os.getenv("CACHE_TYPE", "SimpleCache"))
app.config.setdefault("CACHE_DEFAULT_TIMEOUT", int(os.getenv("CACHE_TTL", "60")))
app.config.setdefault("CACHE_THRESHOLD", int(os.getenv("CACHE_THRESHOLD", "500")))
cache.init_app(app)

# Hierarchy engine configuration
app.config.setdefault("REORDER_BASE_OFFSET", int(os.getenv("REORDER_BASE_OFFSET", "10000")))
app.config.setdefault("SUBJECT_DELETE_CASCADES", _env_flag("SUBJECT_DELETE_CASCADES", False))
app.config.setdefault(
    "CASCADE_DELETE_ERROR_POLICY", os.getenv("CASCADE_DELETE_ERROR_POLICY", "swallow")
)
app.config.setdefault(
    "CASCADE_STATUS_ERROR_POLICY", os.getenv("CASCADE_STATUS_ERROR_POLICY", "abort")
)
app.config.setdefault(
    "STATUS_CASCADE_BIDIRECTIONAL_KINDS",
    os.getenv("STATUS_CASCADE_BIDIRECTIONAL_KINDS", "exam"),
)
app.config.setdefault("ADMIN_AUTH_REQUIRED", _env_flag("ADMIN_AUTH_REQUIRED", True))

app.logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

# Initialize services
init_services()

# Register all blueprints
register_blueprints(app)
for name, info in get_blueprint_info().items():
    app.logger.debug("Blueprint %s: %s - %s", name, info["url_prefix"], info["description"])


# Error handlers
@app.errorhandler(404)
def not_found_error(error):
    """Handle 404 errors."""
    return jsonify({"success": False, "error": "Not found", "code": "NOT_FOUND"}), 404


@app.errorhandler(500)
def internal_error(error):
    """Handle 500 errors."""
    db.session.rollback()
    app.logger.error("Unhandled error on %s: %s", request.path, error)
    return (
        jsonify(
            {
                "success": False,
                "error": "Internal server error",
                "code": "INTERNAL_ERROR",
            }
        ),
        500,
    )


# Health check endpoint
@app.route("/health")
def health_check():
    """Health check endpoint for monitoring."""
    from services import get_service_factory

    try:
        db.session.execute(text("SELECT 1"))
        services = get_service_factory().get_all_services()
        return jsonify(
            {
                "status": "healthy",
                "timestamp": datetime.now().isoformat(),
                "database": "available",
                "services": {name: "available" for name in services},
                "blueprint_info": get_blueprint_info(),
            }
        )
    except Exception as e:
        app.logger.error("Health check failed: %s", e)
        return (
            jsonify(
                {
                    "status": "unhealthy",
                    "error": str(e),
                    "timestamp": datetime.now().isoformat(),
                }
            ),
            500,
        )


# CLI commands
@app.cli.command("init-db")
def init_db_command():
    """Create all hierarchy tables (development only, use migrations otherwise)."""
    db.create_all()
    click.echo("Database tables created")


@app.cli.command("backfill-status")
def backfill_status_command():
    """Set status to active on rows written before status existed."""
    from services import get_content_service

    result = get_content_service().backfill_status()
    for kind, count in result["counts"].items():
        click.echo(f"{kind}: {count}")
    click.echo(f"Total modified: {result['total_modified']}")


if __name__ == "__main__":
    print("\n[*] Starting content hierarchy admin...")
    print(f"[DB] Database: {app.config['SQLALCHEMY_DATABASE_URI']}")
    print(f"[SECRET] Secret key configured: {'Yes' if os.getenv('FLASK_KEY') else 'No'}")
    print("=" * 50)

    app.run(debug=True, port=5001)
