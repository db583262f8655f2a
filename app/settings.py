from constants import *
import copy
import yaml
import os

import logging

# Retrieve main logger
logger = logging.getLogger("main")


# Cache variable
_cached_settings = None


def _apply_environment(settings):
    """Environment variables win over the YAML file"""
    api_url = os.environ.get("LIBRARY_API_URL") or os.environ.get("NEXT_PUBLIC_LIBRARY_API_URL")
    if api_url:
        settings["api"]["base_url"] = api_url.rstrip("/")
    elif settings["api"].get("base_url") == DEFAULT_API_URL:
        logger.warning(
            "Missing environment variable LIBRARY_API_URL, using fallback API URL %s", DEFAULT_API_URL
        )

    if os.environ.get("APP_NAME"):
        settings["app"]["name"] = os.environ["APP_NAME"]
    if os.environ.get("APP_VERSION"):
        settings["app"]["version"] = os.environ["APP_VERSION"]
    return settings


def load_settings(force=False, config_file=None):
    global _cached_settings

    if _cached_settings and not force:
        return _cached_settings

    config_file = config_file or CONFIG_FILE
    settings = copy.deepcopy(DEFAULT_SETTINGS)

    if os.path.exists(config_file):
        logger.debug(f"Reading configuration file: {config_file}")
        with open(config_file, "r") as yaml_file:
            file_settings = yaml.safe_load(yaml_file) or {}

        # Deep merge with defaults so new sections are always present
        for section, values in file_settings.items():
            if isinstance(values, dict) and isinstance(settings.get(section), dict):
                settings[section].update(values)
            else:
                settings[section] = values
    else:
        try:
            os.makedirs(os.path.dirname(config_file), exist_ok=True)
            with open(config_file, "w") as yaml_file:
                yaml.dump(settings, yaml_file)
            logger.info(f"Created default configuration file: {config_file}")
        except OSError as e:
            logger.warning(f"Could not write default configuration file {config_file}: {e}")

    settings = _apply_environment(settings)
    _cached_settings = settings
    return settings


def verify_settings(section, data):
    success = True
    errors = []
    if section == "api":
        base_url = data.get("base_url", "")
        if not base_url.startswith(("http://", "https://")):
            success = False
            errors.append({"path": "api/base_url", "error": f"Invalid upstream URL {base_url}."})
        if int(data.get("timeout", 0)) <= 0:
            success = False
            errors.append({"path": "api/timeout", "error": "Timeout must be positive."})
    elif section == "pagination":
        if int(data.get("default_limit", 0)) > int(data.get("max_limit", 0)):
            success = False
            errors.append({"path": "pagination/default_limit", "error": "Default limit exceeds max limit."})
    return success, errors


def reload_conf():
    """Reload application settings cache"""
    global _cached_settings
    _cached_settings = None
    return load_settings(force=True)
