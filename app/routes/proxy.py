"""
Proxy Routes - same-origin relay to the upstream library API
"""

from flask import Blueprint, current_app, jsonify, request

from constants import CORS_HEADERS
from exceptions import UpstreamException
import logging

logger = logging.getLogger("main")

proxy_bp = Blueprint("proxy", __name__, url_prefix="/api")


def get_forwarder():
    return current_app.extensions["library_forwarder"]


@proxy_bp.after_request
def add_cors_headers(response):
    response.headers.update(CORS_HEADERS)
    return response


@proxy_bp.route("/proxy", methods=["OPTIONS"])
def proxy_options():
    return "", 200


@proxy_bp.route("/proxy", methods=["POST"])
def proxy_post():
    """Relay {endpoint, method, headers, data} and answer {success, status, data, headers}"""
    payload = request.get_json(silent=True) or {}
    endpoint = payload.get("endpoint")
    if not endpoint:
        return jsonify({"success": False, "error": "Endpoint is required"}), 400

    try:
        result = get_forwarder().forward(
            endpoint,
            method=payload.get("method") or "GET",
            headers=payload.get("headers") or {},
            data=payload.get("data"),
        )
    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except UpstreamException as e:
        logger.error(f"Proxy error: {e.message}")
        return jsonify({"success": False, "error": e.message}), 500

    return jsonify(result.to_dict())


@proxy_bp.route("/proxy", methods=["GET"])
def proxy_get():
    endpoint = request.args.get("endpoint")
    if not endpoint:
        return jsonify({"error": "Endpoint parameter required"}), 400

    try:
        result = get_forwarder().forward(endpoint, method="GET", headers={"Accept": "application/json"})
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except UpstreamException as e:
        logger.error(f"Proxy GET error: {e.message}")
        return jsonify({"error": "Proxy request failed", "details": e.message}), 500

    body = {
        "data": result.data,
        "success": result.success,
        "status": result.status,
        "statusText": result.status_text,
    }
    return jsonify(body), 200 if result.success else result.status
