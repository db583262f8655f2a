from flask import Blueprint, current_app, g, jsonify, request, session
from flask_login import LoginManager, current_user, login_user, logout_user
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from functools import wraps

from api_responses import ErrorCode, error_response, handle_api_errors, success_response
from captcha import TooManyAttempts
from constants import STORAGE_SESSION_ID_KEY
from exceptions import ApiError, ValidationException
from library_api import describe_login_error
from models import LibraryUser
from session_manager import (
    SessionPhase,
    SessionState,
    clear_session_storage,
    generate_session_id,
    persist_session,
)
from utils import sanitize_sensitive_data
import logging

# Retrieve main logger
logger = logging.getLogger("main")

auth_blueprint = Blueprint("auth", __name__)

login_manager = LoginManager()

# No default limits: the countdown polls the session endpoint every second
limiter = Limiter(key_func=get_remote_address, default_limits=[], storage_uri="memory://")


def get_registry():
    return current_app.extensions["library_registry"]


def get_captcha_store():
    return current_app.extensions["captcha_store"]


@login_manager.user_loader
def load_user(session_id):
    """Load user for Flask-Login from the live session registry"""
    entry = get_registry().get(session_id)
    if entry is None:
        return None
    return LibraryUser(session_id, entry.state.user_id, entry.state.name)


@login_manager.unauthorized_handler
def unauthorized_json():
    return error_response(
        error_code=ErrorCode.UNAUTHORIZED,
        message="Authentication required",
        status_code=401,
    )


def force_logout(session_id=None):
    """Clear local state immediately; the upstream logout runs in the background"""
    session_id = session_id or session.get(STORAGE_SESSION_ID_KEY)
    if session_id:
        get_registry().end_session(session_id)
    clear_session_storage(session)
    logout_user()


@auth_blueprint.before_app_request
def enforce_session_validity():
    """An expired or orphaned session is logged out on the next request"""
    session_id = session.get(STORAGE_SESSION_ID_KEY)
    if not session_id:
        return

    entry = get_registry().get(session_id)
    if entry is None or not entry.state.is_valid():
        reason = "missing" if entry is None else "expired"
        logger.info(f"Session {session_id} {reason}, forcing logout")
        g.session_ended = reason
        force_logout(session_id)


def session_required(f):
    """Resolve the caller's LibraryAPI client into g.library_entry or answer 401"""
    @wraps(f)
    def decorated_view(*args, **kwargs):
        if not current_user.is_authenticated:
            return login_manager.unauthorized()
        entry = get_registry().get(current_user.get_id())
        if entry is None or not entry.state.is_valid():
            force_logout(current_user.get_id())
            return login_manager.unauthorized()
        g.library_entry = entry
        return f(*args, **kwargs)

    return decorated_view


def current_client():
    return g.library_entry.client


def current_state():
    return g.library_entry.state


def _login_rate_limit():
    return current_app.config["LOGIN_RATE_LIMIT"]


def _check_captcha(data):
    """Raises ValidationException / TooManyAttempts when the login captcha is not solved"""
    result = get_captcha_store().verify(data.get("captcha_id"), data.get("captcha_answer"))
    if not result["valid"]:
        raise ValidationException("Invalid CAPTCHA")


@auth_blueprint.route("/api/auth/login", methods=["POST"])
@limiter.limit(_login_rate_limit)
def login():
    data = request.get_json(silent=True) or {}
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    logger.debug(f"Login request: {sanitize_sensitive_data(data)}")

    if not username or not password:
        return jsonify({"success": False, "error": "Username and password are required"}), 400

    if current_app.config["REQUIRE_CAPTCHA"]:
        try:
            _check_captcha(data)
        except TooManyAttempts as e:
            return jsonify({"success": False, "error": str(e)}), 429
        except ValidationException as e:
            return jsonify({"success": False, "error": e.message}), 400

    registry = get_registry()
    client = registry.create_client()
    session_id = generate_session_id()
    try:
        response = client.login(username, password, session_id)
    except ApiError as e:
        client.close()
        logger.warning(f"Login failed for user {username}: {e.message}")
        if e.status in (400, 401, 403):
            status_code = 401
        elif e.status == 0:
            status_code = 503
        else:
            status_code = 502
        return jsonify({"success": False, "error": describe_login_error(e)}), status_code

    previous = session.get(STORAGE_SESSION_ID_KEY)
    if previous:
        registry.end_session(previous)

    state = SessionState.create(
        user_id=client.user["uid"],
        name=client.user["name"],
        session_id=session_id,
        csrf_token=response.csrf_token,
        logout_token=response.logout_token,
    )
    registry.register(client, state)
    persist_session(session, state)
    login_user(LibraryUser(session_id, state.user_id, state.name))

    logger.info(f"Sucessfull login for user {username}")
    return jsonify({"success": True, "user": state.user_payload(), "session": state.status()})


@auth_blueprint.route("/api/auth/logout", methods=["POST"])
def logout():
    force_logout()
    return success_response(message="Logged out")


@auth_blueprint.route("/api/session")
def session_status():
    """
    Restore check issued by the dashboard on load and polled by the countdown.
    A persisted session is only reported as live when it is still valid and the
    server-side client confirms it.
    """
    if "session_ended" in g:
        return jsonify({"authenticated": False, "phase": SessionPhase.LOGGED_OUT, "reason": g.session_ended})

    stored = SessionState.from_storage(session)
    if stored is None:
        clear_session_storage(session)
        return jsonify({"authenticated": False, "phase": SessionPhase.LOGGED_OUT})

    entry = get_registry().get(stored.session_id)
    if entry is None or not entry.client.verify_session(stored.session_id):
        force_logout(stored.session_id)
        return jsonify({"authenticated": False, "phase": SessionPhase.LOGGED_OUT, "reason": "verification_failed"})

    return jsonify({"authenticated": True, "user": entry.state.user_payload(), **entry.state.status()})


@auth_blueprint.route("/api/session/activity", methods=["POST"])
@session_required
def session_activity():
    state = current_state()
    updated = state.record_activity()
    if updated:
        persist_session(session, state)
    return jsonify({"updated": updated, "lastActivity": state.last_activity})


@auth_blueprint.route("/api/session/dismiss", methods=["POST"])
@session_required
@handle_api_errors
def dismiss_warning():
    data = request.get_json(silent=True) or {}
    state = current_state()
    state.dismiss(data.get("which", SessionPhase.WARNING))
    return jsonify(state.status())
