"""
JSON API (Flask blueprint).

    GET  /api/predictions?region=&woreda=
    POST /api/translate            {q, target, source?}
    GET  /api/regions
"""

from flask import Blueprint, current_app, jsonify, request

from .predictions import mock_series
from .regions import (ETHIOPIA_BOUNDS, REGION_BOUNDS, REGION_LABELS, REGION_WOREDAS,
                      REGIONS, is_region)
from .translate import TranslationError, translate_texts

SESSION_HEADER = "X-Session-Token"

api = Blueprint("api", __name__, url_prefix="/api")


def _session_store():
    return current_app.config.get("SESSION_STORE")


@api.route("/predictions", methods=["GET"])
def predictions():
    try:
        region = request.args.get("region") or None
        woreda = request.args.get("woreda") or None

        # A session header is optional but must be valid when sent;
        # it supplies the default region/woreda
        token = request.headers.get(SESSION_HEADER)
        store = _session_store()
        if token and store is not None:
            user = store.current_user(token)
            if user is None:
                return jsonify({"error": "Unauthorized"}), 401
            if not region:
                region = user.place_of_interest.region
                woreda = woreda or user.place_of_interest.woreda

        if not is_region(region):
            return jsonify({"error": f"Unknown region: {region}"}), 400
        if woreda and woreda not in REGION_WOREDAS[region]:
            return jsonify({"error": f"Unknown woreda for {region}: {woreda}"}), 400

        return jsonify({"region": region, "woreda": woreda,
                        "predictions": mock_series(region, woreda)}), 200

    except Exception as e:
        return jsonify({"error": str(e)}), 500


@api.route("/translate", methods=["POST"])
def translate():
    try:
        body = request.get_json(silent=True) or {}
        translations = translate_texts(body.get("q"), body.get("target"),
                                       source=body.get("source"),
                                       api_key=current_app.config.get("GOOGLE_TRANSLATE_API_KEY"))
        return jsonify({"translations": translations}), 200

    except TranslationError as e:
        return jsonify({"error": str(e)}), e.status
    except Exception as e:
        return jsonify({"error": str(e) or "Unknown error"}), 500


@api.route("/regions", methods=["GET"])
def regions():
    return jsonify({
        "regions": [
            {"id": r, "label": REGION_LABELS[r], "woredas": REGION_WOREDAS[r],
             "bounds": REGION_BOUNDS[r]}
            for r in REGIONS
        ],
        "bounds": ETHIOPIA_BOUNDS,
    }), 200
