"""Session routes.

Every engine operation is a POST against the session; the response carries
the operation result and the session view after it.
"""

from typing import Any

from flask import Blueprint, jsonify, request

from lessonplay.engine.state_machine import AnswerResult, NavigationResult
from lessonplay.errors import ManifestValidationError

from ..services.session_service import get_session_service, session_to_dict

bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


def _bad_request(message: str):
    return jsonify({"error": "bad_request", "message": message}), 400


def _not_found(session_id: str):
    return jsonify({"error": "not_found", "message": f"Session {session_id} not found"}), 404


def _invalid_manifest(error: ManifestValidationError):
    return jsonify({
        "error": "invalid_manifest",
        "message": str(error),
        "issues": [issue.to_dict() for issue in error.issues],
    }), 422


def _score_to_dict(result: AnswerResult) -> dict[str, Any] | None:
    if result.score is None:
        return None
    score = result.score
    return {
        "questionId": score.question_id,
        "earned": score.earned,
        "possible": score.possible,
        "correct": score.correct,
        "invalidOptionIds": list(score.invalid_option_ids),
    }


def _respond(session, result: NavigationResult | AnswerResult):
    body: dict[str, Any] = {"success": result.success, "session": session_to_dict(session)}
    if isinstance(result, AnswerResult):
        body["score"] = _score_to_dict(result)
        if result.attempt_score is not None:
            attempt = result.attempt_score
            body["attemptScore"] = {
                "percentage": attempt.percentage,
                "passed": attempt.passed,
                "earnedPoints": attempt.earned_points,
                "totalPoints": attempt.total_points,
                "penaltyApplied": attempt.penalty_applied,
            }
    if not result.success:
        body["error"] = result.error.to_dict()
        return jsonify(body), 409
    return jsonify(body)


def _json_object() -> dict | None:
    """The request body as a dict; an empty body is {} and a non-object body is None."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        return None
    return payload


def _selection(payload: dict) -> tuple[str, list[str]] | None:
    question_id = payload.get("questionId")
    option_ids = payload.get("optionIds")
    if not isinstance(question_id, str) or not isinstance(option_ids, list):
        return None
    return question_id, [str(option_id) for option_id in option_ids]


@bp.route("", methods=["POST"])
def create():
    """Start a session for a stored game (gameId) or an inline manifest."""
    payload = _json_object()
    if payload is None:
        return _bad_request("Request body must be a JSON object")
    game_id = payload.get("gameId")
    manifest = payload.get("manifest")
    if game_id is None and manifest is None:
        return _bad_request("Provide gameId or manifest")

    try:
        session = get_session_service().create_session(game_id=game_id, manifest=manifest)
    except ManifestValidationError as e:
        return _invalid_manifest(e)
    except KeyError:
        return jsonify({"error": "not_found", "message": f"Game {game_id} not found"}), 404

    return jsonify(session_to_dict(session)), 201


@bp.route("/resume", methods=["POST"])
def resume():
    """Resume a session from a client-held snapshot."""
    payload = _json_object()
    if payload is None:
        return _bad_request("Request body must be a JSON object")
    snapshot = payload.get("snapshot")
    if not isinstance(snapshot, dict):
        return _bad_request("Provide a snapshot object")

    try:
        result = get_session_service().resume(snapshot, manifest=payload.get("manifest"))
    except ManifestValidationError as e:
        return _invalid_manifest(e)
    except KeyError:
        return jsonify({"error": "not_found", "message": "Game of the snapshot not found"}), 404

    if not result.success:
        return jsonify({
            "error": "stale_session",
            "message": result.error.message,
            "missingSceneIds": result.error.missing_scene_ids,
            "restartAvailable": result.restart_available,
        }), 409
    return jsonify(session_to_dict(result.session))


@bp.route("/<session_id>", methods=["GET"])
def view(session_id: str):
    session = get_session_service().get_session(session_id)
    if session is None:
        return _not_found(session_id)
    return jsonify(session_to_dict(session))


@bp.route("/<session_id>/snapshot", methods=["GET"])
def snapshot(session_id: str):
    session = get_session_service().get_session(session_id)
    if session is None:
        return _not_found(session_id)
    return jsonify(session.get_snapshot().to_dict())


@bp.route("/<session_id>/events", methods=["GET"])
def events(session_id: str):
    """Recent events of the session, oldest first."""
    session = get_session_service().get_session(session_id)
    if session is None:
        return _not_found(session_id)
    return jsonify([event.to_dict() for event in session.events.recent_events()])


@bp.route("/<session_id>/advance", methods=["POST"])
def advance(session_id: str):
    session = get_session_service().get_session(session_id)
    if session is None:
        return _not_found(session_id)
    payload = _json_object()
    if payload is None:
        return _bad_request("Request body must be a JSON object")
    return _respond(session, session.advance(payload.get("choiceId")))


@bp.route("/<session_id>/back", methods=["POST"])
def back(session_id: str):
    session = get_session_service().get_session(session_id)
    if session is None:
        return _not_found(session_id)
    return _respond(session, session.go_back())


@bp.route("/<session_id>/skip", methods=["POST"])
def skip(session_id: str):
    session = get_session_service().get_session(session_id)
    if session is None:
        return _not_found(session_id)
    return _respond(session, session.skip())


@bp.route("/<session_id>/jump", methods=["POST"])
def jump(session_id: str):
    session = get_session_service().get_session(session_id)
    if session is None:
        return _not_found(session_id)
    payload = _json_object()
    if payload is None:
        return _bad_request("Request body must be a JSON object")
    scene_id = payload.get("sceneId")
    if not isinstance(scene_id, str):
        return _bad_request("Provide sceneId")
    return _respond(session, session.jump_to(scene_id))


@bp.route("/<session_id>/answers", methods=["POST"])
def answer(session_id: str):
    """Submit a question's selection for scoring."""
    session = get_session_service().get_session(session_id)
    if session is None:
        return _not_found(session_id)
    payload = _json_object()
    if payload is None:
        return _bad_request("Request body must be a JSON object")
    selection = _selection(payload)
    if selection is None:
        return _bad_request("Provide questionId and optionIds")
    question_id, option_ids = selection
    return _respond(session, session.submit_answer(question_id, option_ids))


@bp.route("/<session_id>/select", methods=["POST"])
def select(session_id: str):
    """Store a draft selection without scoring it."""
    session = get_session_service().get_session(session_id)
    if session is None:
        return _not_found(session_id)
    payload = _json_object()
    if payload is None:
        return _bad_request("Request body must be a JSON object")
    selection = _selection(payload)
    if selection is None:
        return _bad_request("Provide questionId and optionIds")
    question_id, option_ids = selection
    return _respond(session, session.select(question_id, option_ids))


@bp.route("/<session_id>/retry", methods=["POST"])
def retry(session_id: str):
    session = get_session_service().get_session(session_id)
    if session is None:
        return _not_found(session_id)
    return _respond(session, session.retry())


@bp.route("/<session_id>/abandon", methods=["POST"])
def abandon(session_id: str):
    session = get_session_service().get_session(session_id)
    if session is None:
        return _not_found(session_id)
    return _respond(session, session.abandon())


@bp.route("/<session_id>/results", methods=["GET"])
def results(session_id: str):
    session = get_session_service().get_session(session_id)
    if session is None:
        return _not_found(session_id)
    return jsonify(session.results().to_dict())
