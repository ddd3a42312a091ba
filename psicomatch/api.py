from __future__ import annotations

import logging
from functools import wraps

from flask import Flask, g, jsonify, request

from .db import ROLE_PSYCHOLOGIST, Database
from .errors import AccessDeniedError, NotFoundError
from .matching import PATIENT_MATCHING_TEST_CODE, PSYCHOLOGIST_MATCHING_TEST_CODE, MatchingService


logger = logging.getLogger(__name__)


def create_app(db: Database) -> Flask:
    app = Flask(__name__)
    service = MatchingService(db)

    def user_required(f):
        """Resolve the caller from the X-User-Id header into ``g.user``."""
        @wraps(f)
        def decorated_function(*args, **kwargs):
            raw = request.headers.get("X-User-Id", "").strip()
            if not raw.isdigit():
                return jsonify({"error": "X-User-Id header is required"}), 401
            user = db.get_user(int(raw))
            if not user:
                raise NotFoundError("User not found")
            g.user = user
            return f(*args, **kwargs)
        return decorated_function

    def psychologist_only() -> None:
        if g.user.role != ROLE_PSYCHOLOGIST:
            raise AccessDeniedError("Only psychologists can access this test")

    def questionnaire(test_code: str):
        data = db.get_questionnaire(test_code)
        if data is None:
            raise NotFoundError(f"Test {test_code} not found")
        return jsonify(data)

    def submit(test_code: str):
        body = request.get_json(silent=True) or {}
        if not isinstance(body, dict):
            raise ValueError("Request body must be a JSON object")
        stored = db.replace_user_answers(g.user.id, test_code, body.get("answers"))
        logger.info("User %s submitted %s with %d answers", g.user.id, test_code, stored)
        return jsonify({"success": True, "message": "Matching test completed"})

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc):
        return jsonify({"error": str(exc)}), 404

    @app.errorhandler(AccessDeniedError)
    def handle_access_denied(exc):
        return jsonify({"error": str(exc)}), 403

    @app.errorhandler(ValueError)
    def handle_bad_request(exc):
        return jsonify({"error": str(exc)}), 400

    @app.route("/api/matching/patient-test")
    @user_required
    def patient_test():
        return questionnaire(PATIENT_MATCHING_TEST_CODE)

    @app.route("/api/matching/psychologist-test")
    @user_required
    def psychologist_test():
        psychologist_only()
        return questionnaire(PSYCHOLOGIST_MATCHING_TEST_CODE)

    @app.route("/api/matching/patient-test/submit", methods=["POST"])
    @user_required
    def submit_patient_test():
        return submit(PATIENT_MATCHING_TEST_CODE)

    @app.route("/api/matching/psychologist-test/submit", methods=["POST"])
    @user_required
    def submit_psychologist_test():
        psychologist_only()
        return submit(PSYCHOLOGIST_MATCHING_TEST_CODE)

    @app.route("/api/matching/psychologist-test/status")
    @user_required
    def psychologist_test_status():
        psychologist_only()
        completed = service.has_completed_test(g.user.id, PSYCHOLOGIST_MATCHING_TEST_CODE)
        return jsonify({"completed": completed})

    @app.route("/api/matching/psychologists")
    @user_required
    def matching_psychologists():
        results = service.calculate_matching(g.user.id)
        psychologists = [
            {
                "id": r.psychologist.id,
                "name": r.psychologist.name,
                "email": r.psychologist.email,
                "gender": r.psychologist.gender,
                "age": r.psychologist.age,
                "affinityScore": r.affinity_score,
                "matchPercentage": r.match_percentage,
            }
            for r in results
        ]
        return jsonify({"psychologists": psychologists})

    return app
