import os

APP_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_DIR = os.environ.get('LIBRARY_CONFIG_DIR', os.path.join(APP_DIR, 'config'))
CONFIG_FILE = os.path.join(CONFIG_DIR, 'settings.yaml')

BUILD_VERSION = '20251019_0930'

DEFAULT_API_URL = 'https://lib.prayalabs.com'
USER_AGENT = 'Mozilla/5.0 (compatible; Library-PWA/1.0)'

# Upstream endpoints (Drupal JSON:API and legacy REST)
ENDPOINTS = {
    'LOGIN': '/web/user/login',
    'LOGOUT': '/web/user/logout',
    'BOOKS': '/web/jsonapi/lmsbook/lmsbook',
    'BOOK_RESERVATION': '/web/entity/requestedlmsbook',
    'AUTHORS': '/web/jsonapi/lmsbookauthor/lmsbookauthor',
    'AUTHOR_DETAILS': '/web/lmsbookauthor',
    'PUBLICATIONS': '/web/jsonapi/lmsbook/lmsbook',
    'CATEGORY_TAXONOMY': '/web/jsonapi/taxonomy_term/lmsbook_category',
    'USER_PROFILE': '/web/user',
    'BORROWED_BOOKS': '/web/borrowed',
    'REQUESTED_BOOKS': '/web/requested',
    'FEATURED_IMAGE': '/web/jsonapi/lmsbook/lmsbook',
}

JSONAPI_MEDIA_TYPE = 'application/vnd.api+json'
BOOK_FIELDS = 'title,uid,isbn,lmsbook_category,lmspublication,copies,price,details,featured_image,author'

# Author IDs probed one by one when the bulk listing is unavailable
FALLBACK_AUTHOR_IDS = ['7', '8', '13', '1', '2', '3', '4', '5', '6', '9', '10', '11', '12', '14', '15']

DEFAULT_CATEGORIES = [
    'Fiction',
    'Non-Fiction',
    'Science',
    'History',
    'Biography',
    'Technology',
    'Business',
    'Arts',
    'Philosophy',
    'Religion',
]

# Session timings (milliseconds)
SESSION_DURATION_MS = 10 * 60 * 1000
SESSION_WARNING_MS = 2 * 60 * 1000
SESSION_FINAL_WARNING_MS = 5 * 1000
SESSION_CHECK_INTERVAL_MS = 30 * 1000
ACTIVITY_DEBOUNCE_MS = 1000

# Persisted session keys
STORAGE_USER_KEY = 'library_user'
STORAGE_CSRF_KEY = 'library_csrf_token'
STORAGE_LOGOUT_KEY = 'library_logout_token'
STORAGE_SESSION_ID_KEY = 'library_session_id'
STORAGE_KEYS = [STORAGE_USER_KEY, STORAGE_CSRF_KEY, STORAGE_LOGOUT_KEY, STORAGE_SESSION_ID_KEY]

MAX_BOOKS_ALLOWED = 4
MAX_CREDITS = 5
LOAN_DURATION_DAYS = 15
RESERVATION_HOLD_DAYS = 7

INVALID_CREDENTIALS_MESSAGE = 'Invalid Credentials!!'
CONNECTIVITY_MESSAGE = 'Unable to connect to the server. Please check your internet connection.'

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, PUT, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization, X-Requested-With',
    'Access-Control-Max-Age': '86400',
}

DEFAULT_SETTINGS = {
    "api": {
        "base_url": DEFAULT_API_URL,
        "timeout": 30,
        "retry_attempts": 3,
        "retry_delay": 1.0,
    },
    "app": {
        "name": "Library Management System",
        "version": "1.0.0",
    },
    "pagination": {
        "default_limit": 12,
        "max_limit": 100,
    },
    "aggregator": {
        "image_workers": 8,
        "background_workers": 4,
    },
    "calendar": {
        "timezone": "UTC",
        "location": "University Library",
        "contact": "library@university.edu",
    },
    "security": {
        "require_captcha": False,
        "login_rate_limit": "20 per minute",
        "captcha_rate_limit": "30 per minute",
    },
}
