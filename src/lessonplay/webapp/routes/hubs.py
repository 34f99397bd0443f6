"""World hub routes."""

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from lessonplay.errors import HubError, ManifestValidationError

from ..services.session_service import get_session_service, hub_to_dict, session_to_dict

bp = Blueprint("hubs", __name__, url_prefix="/api/hubs")


@bp.route("", methods=["POST"])
def create():
    """Create a hub session from a hub definition."""
    definition = request.get_json(silent=True)
    if not isinstance(definition, dict):
        return jsonify({"error": "bad_request", "message": "Expected a JSON hub definition"}), 400

    try:
        hub = get_session_service().create_hub(definition)
    except ValidationError as e:
        return jsonify({"error": "invalid_hub", "message": str(e)}), 422
    except HubError as e:
        return jsonify({"error": e.code, "message": e.message}), 422
    except ManifestValidationError as e:
        return jsonify({"error": "invalid_manifest", "message": str(e)}), 422
    except KeyError as e:
        return jsonify({"error": "manifest_missing", "message": f"Game {e.args[0]} not found"}), 404

    return jsonify(hub_to_dict(hub)), 201


@bp.route("/<hub_session_id>", methods=["GET"])
def view(hub_session_id: str):
    hub = get_session_service().get_hub(hub_session_id)
    if hub is None:
        return jsonify({"error": "not_found", "message": f"Hub {hub_session_id} not found"}), 404
    return jsonify(hub_to_dict(hub))


@bp.route("/<hub_session_id>/worlds/<int:world_index>/start", methods=["POST"])
def start_world(hub_session_id: str, world_index: int):
    """Start or replay a world; the world's session is then driven via /api/sessions."""
    service = get_session_service()
    hub = service.get_hub(hub_session_id)
    if hub is None:
        return jsonify({"error": "not_found", "message": f"Hub {hub_session_id} not found"}), 404

    result = hub.start_world(world_index)
    if not result.success:
        body = hub_to_dict(hub)
        body["error"] = result.error.to_dict()
        return jsonify(body), 409

    service.register_hub_world(result.session)
    body = hub_to_dict(hub)
    body["session"] = session_to_dict(result.session)
    return jsonify(body), 201
