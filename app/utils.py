import logging
import re
import os
import time
from datetime import datetime, timezone


# Custom logging formatter to support colors
class ColoredFormatter(logging.Formatter):
    # Define color codes
    COLORS = {
        'DEBUG': '\033[94m',   # Blue
        'INFO': '\033[92m',    # Green
        'WARNING': '\033[93m', # Yellow
        'ERROR': '\033[91m',   # Red
        'CRITICAL': '\033[95m' # Magenta
    }
    RESET = '\033[0m'  # Reset color

    def format(self, record):
        # Add color to the log level name
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"

        return super().format(record)


# Filter to remove date from http access logs
class FilterRemoveDateFromWerkzeugLogs(logging.Filter):
    # '192.168.0.102 - - [30/Jun/2024 01:14:03] "%s" %s %s' -> '192.168.0.102 - "%s" %s %s'
    pattern: re.Pattern = re.compile(r' - - \[.+?] "')

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self.pattern.sub(' - "', str(record.msg))
        return True


def get_or_create_secret_key():
    """
    Generate or load a persistent secret key for Flask sessions.
    The key is stored in CONFIG_DIR/.secret_key with restricted permissions.

    Returns:
        str: 64-character hex secret key
    """
    import secrets
    from constants import CONFIG_DIR

    logger = logging.getLogger('main')
    secret_key_file = os.path.join(CONFIG_DIR, '.secret_key')

    # Try to load existing key
    if os.path.exists(secret_key_file):
        try:
            with open(secret_key_file, 'r') as f:
                key = f.read().strip()
                if len(key) == 64:  # Validate key length
                    return key
                logger.warning("Invalid secret key found, generating new one")
        except OSError as e:
            logger.error(f"Error reading secret key: {e}")

    key = secrets.token_hex(32)  # 32 bytes = 64 hex chars

    try:
        os.makedirs(CONFIG_DIR, exist_ok=True)

        with open(secret_key_file, 'w') as f:
            f.write(key)

        # Set file permissions to 600 (owner read/write only)
        os.chmod(secret_key_file, 0o600)

        logger.info("Generated new secret key and saved to disk")
    except OSError as e:
        logger.error(f"Error saving secret key: {e}")
        logger.warning("Using non-persistent secret key")

    return key


def sanitize_sensitive_data(data, sensitive_keys=None):
    """
    Remove or mask sensitive data before logging.

    Args:
        data: Dictionary, string, or other data to sanitize
        sensitive_keys: List of keys to mask (default: common sensitive keys)

    Returns:
        Sanitized version of the data
    """
    if sensitive_keys is None:
        sensitive_keys = [
            'password', 'passwd', 'pwd', 'pass',
            'secret', 'api_key', 'apikey',
            'token', 'csrf',
            'session',
            'authorization', 'auth',
        ]

    if isinstance(data, dict):
        sanitized = {}
        for k, v in data.items():
            key_lower = str(k).lower()
            is_sensitive = any(sens in key_lower for sens in sensitive_keys)

            if is_sensitive:
                # Show only first 2 and last 2 chars if string, else mask completely
                if isinstance(v, str) and len(v) > 4:
                    sanitized[k] = f"{v[:2]}***{v[-2:]}"
                else:
                    sanitized[k] = "***"
            elif isinstance(v, dict):
                sanitized[k] = sanitize_sensitive_data(v, sensitive_keys)
            elif isinstance(v, list):
                sanitized[k] = [sanitize_sensitive_data(item, sensitive_keys) if isinstance(item, (dict, list)) else item for item in v]
            else:
                sanitized[k] = v
        return sanitized

    elif isinstance(data, list):
        return [sanitize_sensitive_data(item, sensitive_keys) if isinstance(item, (dict, list)) else item for item in data]

    return data


_HTML_TAG = re.compile(r'<[^>]*>')
_NON_ALNUM = re.compile(r'[^a-zA-Z0-9]')


def strip_html(value):
    """Drupal views wrap dates in <time> tags"""
    if not value:
        return ""
    return _HTML_TAG.sub("", str(value)).strip()


def safe_filename_part(value):
    return _NON_ALNUM.sub("-", value or "")


def now_ms():
    """Current wall clock in epoch milliseconds"""
    return int(time.time() * 1000)


def now_utc():
    """Returns current datetime in UTC (aware)"""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """
    Ensure a datetime object is aware and in UTC.
    Handles ISO strings, None, and naive datetimes.
    """
    if dt is None:
        return None

    if isinstance(dt, str):
        try:
            dt = datetime.fromisoformat(dt.replace('Z', '+00:00'))
        except (ValueError, TypeError, AttributeError):
            return None

    if not hasattr(dt, 'tzinfo'):
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


_UPSTREAM_DATE_FORMATS = ('%Y-%m-%d', '%m/%d/%Y', '%d/%m/%Y', '%Y-%m-%d %H:%M:%S', '%a, %m/%d/%Y - %H:%M')


def parse_upstream_date(value):
    """
    Parse a date coming from the legacy REST views.
    Returns an aware UTC datetime or None when the value is not a date.
    """
    cleaned = strip_html(value)
    if not cleaned:
        return None

    parsed = ensure_utc(cleaned)
    if parsed is not None:
        return parsed

    for fmt in _UPSTREAM_DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None
