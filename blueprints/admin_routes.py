"""Admin Routes Blueprint

JSON API used by the back-office to manage the content hierarchy:
Exam -> Subject -> Unit -> Chapter -> Topic -> SubTopic -> Definition.
"""

from flask import Blueprint, current_app, jsonify, request, session

from errors import HierarchyError, InvalidArgumentError
from extensions import cache
from services import (
    get_cascade_service,
    get_content_service,
    get_reorder_service,
)

# Create the Blueprint
admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

# Body keys older admin screens send the reorder list under.
LEGACY_REORDER_KEYS = {
    "subject": "subjects",
    "unit": "units",
    "chapter": "chapters",
    "topic": "topics",
    "subtopic": "subTopics",
    "definition": "definitions",
}


# ============================================================================
# ACCESS CONTROL AND ERRORS
# ============================================================================


@admin_bp.before_request
def require_admin():
    """Restrict admin routes to authenticated admin users."""
    if not current_app.config.get("ADMIN_AUTH_REQUIRED", True):
        return None
    if not session.get("is_admin"):
        return jsonify({"success": False, "error": "Admin access required"}), 401
    return None


@admin_bp.errorhandler(HierarchyError)
def handle_hierarchy_error(exc: HierarchyError):
    if exc.status_code >= 500:
        current_app.logger.error("Admin request failed: %s", exc.message)
    return jsonify(exc.to_dict()), exc.status_code


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidArgumentError("Request body must be a JSON object")
    return data


# ============================================================================
# HIERARCHY CRUD
# ============================================================================


@admin_bp.route("/hierarchy/<kind>", methods=["GET"])
def list_nodes(kind):
    """List nodes of a kind, optionally under one parent."""
    items = get_content_service().list_nodes(
        kind,
        parent_id=request.args.get("parent_id"),
        status=request.args.get("status"),
    )
    return jsonify({"success": True, "data": items, "count": len(items)})


@admin_bp.route("/hierarchy/<kind>", methods=["POST"])
def create_node(kind):
    node = get_content_service().create_node(kind, _json_body())
    return (
        jsonify(
            {
                "success": True,
                "message": f"{kind.capitalize()} created successfully",
                "data": node,
            }
        ),
        201,
    )


@admin_bp.route("/hierarchy/<kind>/<node_id>", methods=["GET"])
def get_node(kind, node_id):
    node = get_content_service().get_node(kind, node_id)
    return jsonify({"success": True, "data": node})


@admin_bp.route("/hierarchy/<kind>/<node_id>", methods=["PUT"])
def update_node(kind, node_id):
    node = get_content_service().update_node(kind, node_id, _json_body())
    return jsonify(
        {
            "success": True,
            "message": f"{kind.capitalize()} updated successfully",
            "data": node,
        }
    )


@admin_bp.route("/hierarchy/<kind>/<node_id>", methods=["DELETE"])
def delete_node(kind, node_id):
    """Delete a node and cascade to its descendants."""
    result = get_cascade_service().delete_node(kind, node_id)
    return jsonify(result)


@admin_bp.route("/hierarchy/<kind>/<node_id>/status", methods=["PATCH"])
def set_node_status(kind, node_id):
    """Activate or deactivate a node and cascade to its descendants."""
    payload = _json_body()
    result = get_cascade_service().set_status(kind, node_id, payload.get("status"))
    return jsonify(result)


@admin_bp.route("/hierarchy/<kind>/reorder", methods=["PATCH", "POST"])
def reorder_nodes(kind):
    """Persist a new sibling order for one parent."""
    payload = _json_body()
    updates = payload.get("items")
    if updates is None and kind in LEGACY_REORDER_KEYS:
        updates = payload.get(LEGACY_REORDER_KEYS[kind])
    result = get_reorder_service().reorder_siblings(kind, updates)
    return jsonify(result)


# ============================================================================
# EXAM DETAILS
# ============================================================================


@admin_bp.route("/hierarchy/exam/<exam_id>/details", methods=["GET"])
def get_exam_details(exam_id):
    details = get_content_service().get_exam_details(exam_id)
    return jsonify({"success": True, "data": details})


@admin_bp.route("/hierarchy/exam/<exam_id>/details", methods=["PUT"])
def save_exam_details(exam_id):
    details = get_content_service().save_exam_details(exam_id, _json_body())
    return jsonify(
        {
            "success": True,
            "message": "Exam details saved successfully",
            "data": details,
        }
    )


# ============================================================================
# MAINTENANCE
# ============================================================================


@admin_bp.route("/maintenance/backfill-status", methods=["POST"])
def backfill_status():
    """Set status on rows created before the status field existed."""
    result = get_content_service().backfill_status()
    return jsonify(result)


@admin_bp.route("/clear-cache", methods=["POST"])
def admin_clear_cache():
    """Clear all cached listings."""
    cache.clear()
    current_app.logger.info("Listing cache cleared by admin request")
    return jsonify({"success": True, "message": "Cache cleared successfully"})
