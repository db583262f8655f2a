"""
Library Management System - dashboard gateway
Application factory and entry point
"""
import warnings
import os
import sys
import logging
import atexit

# Suppress Flask-Limiter in-memory storage warning
warnings.filterwarnings("ignore", category=UserWarning, module="flask_limiter")

import flask.cli
flask.cli.show_server_banner = lambda *args: None

# Core Flask imports
from flask import Flask

# Local imports
from constants import BUILD_VERSION, CONFIG_DIR
from settings import load_settings, verify_settings
from utils import ColoredFormatter, FilterRemoveDateFromWerkzeugLogs, get_or_create_secret_key
from exceptions import register_exception_handlers
import structlog

from auth import auth_blueprint, limiter, login_manager
from api_client import ApiClient
from captcha import CaptchaStore
from client_registry import ClientRegistry
from ics_generator import ICSGenerator
from library_api import LibraryAPI
from proxy import ProxyForwarder

# Routes
from routes.account import account_bp
from routes.books import books_bp
from routes.captcha import captcha_bp
from routes.proxy import proxy_bp

# Jobs
from jobs.scheduler import JobScheduler

# Logging configuration
formatter = ColoredFormatter(
    '[%(asctime)s.%(msecs)03d] %(levelname)s (%(module)s) %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
handler = logging.StreamHandler(sys.stdout)
handler.setFormatter(formatter)

logging.basicConfig(
    level=logging.INFO,
    handlers=[handler]
)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if os.environ.get('LOG_FORMAT') == 'json' else structlog.dev.ConsoleRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger('main')

# Apply filter to hide date from http access logs
logging.getLogger('werkzeug').addFilter(FilterRemoveDateFromWerkzeugLogs())
logging.getLogger('apscheduler').setLevel(logging.WARNING)


def create_app(config_overrides=None, settings=None, forwarder=None, start_scheduler=True):
    """
    Application factory

    settings and forwarder can be injected (tests); otherwise they come from
    CONFIG_DIR/settings.yaml and the configured upstream base URL.
    """
    app = Flask(__name__)
    app_settings = settings or load_settings()

    for section in ("api", "pagination"):
        success, errors = verify_settings(section, app_settings[section])
        if not success:
            raise ValueError(f"Invalid {section} settings: {errors}")

    app.config['SECRET_KEY'] = get_or_create_secret_key()
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'
    app.config['LIBRARY_SETTINGS'] = app_settings
    app.config['PAGINATION'] = app_settings['pagination']
    app.config['REQUIRE_CAPTCHA'] = app_settings['security']['require_captcha']
    app.config['LOGIN_RATE_LIMIT'] = app_settings['security']['login_rate_limit']
    app.config['CAPTCHA_RATE_LIMIT'] = app_settings['security']['captcha_rate_limit']
    if config_overrides:
        app.config.update(config_overrides)

    api_settings = app_settings['api']
    forwarder = forwarder or ProxyForwarder(api_settings['base_url'], timeout=api_settings['timeout'])

    def client_factory():
        return LibraryAPI(forwarder, app_settings)

    calendar_settings = app_settings['calendar']
    app.extensions['library_forwarder'] = forwarder
    app.extensions['library_registry'] = ClientRegistry(client_factory)
    app.extensions['captcha_store'] = CaptchaStore()
    app.extensions['ics_generator'] = ICSGenerator(
        calendar_settings['timezone'],
        location=calendar_settings['location'],
        contact=calendar_settings['contact'],
    )
    app.extensions['qr_client'] = ApiClient(
        "https://api.qrserver.com",
        timeout=api_settings['timeout'],
        retries=api_settings['retry_attempts'],
        retry_delay=api_settings['retry_delay'],
    )

    # Initialize login manager
    login_manager.init_app(app)
    limiter.init_app(app)

    # Register exception handlers
    register_exception_handlers(app)

    # Register blueprints
    app.register_blueprint(auth_blueprint)
    app.register_blueprint(proxy_bp)
    app.register_blueprint(books_bp)
    app.register_blueprint(account_bp)
    app.register_blueprint(captcha_bp)

    # Initialize job scheduler
    job_scheduler = JobScheduler()
    job_scheduler.init_app(app, start=start_scheduler)
    app.extensions['job_scheduler'] = job_scheduler

    logger.info(f"Upstream library API: {api_settings['base_url']}")
    return app


def shutdown_app(app):
    app.extensions['job_scheduler'].shutdown()
    app.extensions['library_registry'].shutdown()


if __name__ == '__main__':
    app = create_app()
    atexit.register(shutdown_app, app)
    logger.info(f'Build Version: {BUILD_VERSION}')
    logger.info(f'Config directory: {CONFIG_DIR}')
    logger.info('Starting server on port 8465...')
    app.run(debug=False, use_reloader=False, host="0.0.0.0", port=int(os.environ.get("PORT", 8465)), threaded=True)
    logger.info('Shutting down server...')
