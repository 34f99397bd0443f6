"""Manifest routes."""

from flask import Blueprint, jsonify, request

from ..services.session_service import get_session_service

bp = Blueprint("manifests", __name__, url_prefix="/api/manifests")


@bp.route("", methods=["GET"])
def index():
    """List stored manifests."""
    return jsonify(get_session_service().list_manifests())


@bp.route("", methods=["POST"])
def create():
    """Validate and store a manifest."""
    raw = request.get_json(silent=True)
    if raw is None:
        return jsonify({"error": "bad_request", "message": "Expected a JSON manifest"}), 400

    result = get_session_service().save_manifest(raw)
    if not result.valid:
        return jsonify(result.to_dict()), 422
    return jsonify(result.to_dict()), 201


@bp.route("/validate", methods=["POST"])
def validate():
    """Validate a manifest without storing it."""
    raw = request.get_json(silent=True)
    if raw is None:
        return jsonify({"error": "bad_request", "message": "Expected a JSON manifest"}), 400

    result = get_session_service().validate_manifest(raw)
    return jsonify(result.to_dict()), 200 if result.valid else 422
