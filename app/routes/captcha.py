"""
Captcha Routes
"""

from flask import Blueprint, current_app, jsonify, request

from auth import limiter
from captcha import TooManyAttempts
from exceptions import ValidationException
import logging

logger = logging.getLogger("main")

captcha_bp = Blueprint("captcha", __name__, url_prefix="/api")


def _captcha_rate_limit():
    return current_app.config["CAPTCHA_RATE_LIMIT"]


@captcha_bp.route("/captcha", methods=["GET"])
@limiter.limit(_captcha_rate_limit)
def new_captcha():
    captcha_id, svg = current_app.extensions["captcha_store"].create()
    return jsonify({"id": captcha_id, "svg": svg})


@captcha_bp.route("/captcha", methods=["POST"])
def verify_captcha():
    data = request.get_json(silent=True) or {}
    try:
        result = current_app.extensions["captcha_store"].verify(data.get("id"), data.get("answer"))
    except TooManyAttempts as e:
        return jsonify({"error": str(e)}), 429
    except ValidationException as e:
        return jsonify({"error": e.message}), 400
    return jsonify(result)
