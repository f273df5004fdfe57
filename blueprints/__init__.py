"""Blueprints Package

Route registration for the admin back-office.
"""

from flask import Flask

from .admin_routes import admin_bp

BLUEPRINTS = (
    (admin_bp, "Content hierarchy administration JSON API"),
)


def register_blueprints(app: Flask) -> None:
    """Register all blueprints with the Flask application."""
    for blueprint, _description in BLUEPRINTS:
        app.register_blueprint(blueprint)


def get_blueprint_info():
    """Describe the registered blueprints for the health endpoint."""
    return {
        blueprint.name: {
            "url_prefix": blueprint.url_prefix,
            "description": description,
        }
        for blueprint, description in BLUEPRINTS
    }


__all__ = ["register_blueprints", "get_blueprint_info", "admin_bp"]
