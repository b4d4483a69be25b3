"""Image version metadata routes."""

import logging

from flask import Blueprint, current_app, jsonify, request

from ..errors import InvalidRampupPlan, VersionNotFound
from ..models import normalize_type
from ..resolver.plan import bucket_ranges, order_plan, plans_by_type

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api/v1")


def _error(status_code, error, message):
    body = {"error": error, "error_code": error.upper().replace(" ", "_"), "message": message}
    return jsonify(body), status_code


@api_bp.errorhandler(VersionNotFound)
def version_not_found(exc):
    return _error(404, "Not Found", str(exc))


@api_bp.errorhandler(InvalidRampupPlan)
def invalid_plan(exc):
    return _error(422, "Invalid Rampup Plan", str(exc))


@api_bp.route("/image-versions")
def list_image_versions():
    """Version decision of every image type (metadata chain)."""
    resolver = current_app.config["resolver"]
    decisions = resolver.resolve_all_metadata()
    return jsonify(
        {
            "image_types": {key: decision.to_dict() for key, decision in decisions.items()},
            "total": len(decisions),
        }
    )


@api_bp.route("/image-versions/<string:image_type>/<string:version>")
def version_info(image_type, version):
    """Exact version lookup, optionally filtered by ?state=ACTIVE&state=NEW."""
    resolver = current_app.config["resolver"]
    try:
        info = resolver.get_version_info(image_type, version, request.args.getlist("state"))
    except ValueError as exc:
        return _error(400, "Bad Request", str(exc))
    return jsonify(
        {
            "image_type": normalize_type(image_type),
            "version": info.version,
            "path": info.path,
            "state": info.state.value,
        }
    )


@api_bp.route("/image-types/<string:image_type>/rampup")
def rampup_plan(image_type):
    """Active rampup plan of an image type with the bucket range of each entry."""
    resolver = current_app.config["resolver"]
    key = normalize_type(image_type)
    plans = resolver.rampup_store.rampup_for_types(frozenset({key}))
    plan = plans_by_type(plans, [key]).get(key)
    if not plan:
        return _error(404, "Not Found", f"No active rampup plan for image type {key}")

    ordered = order_plan(key, plan, resolver.plan_order)
    entries = []
    for entry, (low, high) in zip(ordered, bucket_ranges(ordered)):
        entries.append(
            {
                "version": entry.version,
                "percentage": entry.percentage,
                "buckets": [low, high] if low <= high else None,
            }
        )
    return jsonify(
        {
            "image_type": key,
            "plan_order": resolver.plan_order,
            "allocated": sum(entry.percentage for entry in ordered),
            "entries": entries,
        }
    )
