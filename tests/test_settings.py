"""
Tests for settings loading and validation
"""
import copy
import os

import pytest
import yaml
from unittest.mock import patch

import settings as settings_module
from constants import DEFAULT_API_URL, DEFAULT_SETTINGS
from settings import load_settings, reload_conf, verify_settings


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ('LIBRARY_API_URL', 'NEXT_PUBLIC_LIBRARY_API_URL', 'APP_NAME', 'APP_VERSION'):
        monkeypatch.delenv(name, raising=False)
    settings_module._cached_settings = None
    yield
    settings_module._cached_settings = None


class TestLoadSettings:

    def test_creates_default_file(self, tmp_path):
        config_file = tmp_path / 'config' / 'settings.yaml'

        loaded = load_settings(config_file=str(config_file))

        assert loaded == DEFAULT_SETTINGS
        assert os.path.exists(config_file)
        with open(config_file) as f:
            assert yaml.safe_load(f)['pagination']['default_limit'] == 12

    def test_file_values_merged_over_defaults(self, tmp_path):
        config_file = tmp_path / 'settings.yaml'
        config_file.write_text(yaml.dump({'api': {'base_url': 'https://books.example.org', 'timeout': 10}}))

        loaded = load_settings(config_file=str(config_file))

        assert loaded['api']['base_url'] == 'https://books.example.org'
        assert loaded['api']['timeout'] == 10
        assert loaded['api']['retry_attempts'] == 3
        assert loaded['calendar'] == DEFAULT_SETTINGS['calendar']

    def test_environment_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv('NEXT_PUBLIC_LIBRARY_API_URL', 'https://env.example.org/')
        monkeypatch.setenv('APP_NAME', 'Campus Library')

        loaded = load_settings(config_file=str(tmp_path / 'settings.yaml'))

        assert loaded['api']['base_url'] == 'https://env.example.org'
        assert loaded['app']['name'] == 'Campus Library'

    def test_fallback_url_is_logged(self, tmp_path):
        with patch.object(settings_module, 'logger') as logger:
            loaded = load_settings(config_file=str(tmp_path / 'settings.yaml'))

        assert loaded['api']['base_url'] == DEFAULT_API_URL
        logger.warning.assert_called_once()

    def test_cached_until_reloaded(self, tmp_path):
        config_file = str(tmp_path / 'settings.yaml')
        first = load_settings(config_file=config_file)

        assert load_settings() is first

        with patch.object(settings_module, 'CONFIG_FILE', config_file):
            assert reload_conf() is not first


class TestVerifySettings:

    def test_defaults_are_valid(self):
        for section in ('api', 'pagination'):
            assert verify_settings(section, DEFAULT_SETTINGS[section]) == (True, [])

    def test_invalid_api(self):
        api = copy.deepcopy(DEFAULT_SETTINGS['api'])
        api['base_url'] = 'lib.example.org'
        api['timeout'] = 0

        success, errors = verify_settings('api', api)

        assert success is False
        assert [e['path'] for e in errors] == ['api/base_url', 'api/timeout']

    def test_default_limit_above_max(self):
        success, errors = verify_settings('pagination', {'default_limit': 200, 'max_limit': 100})

        assert success is False
        assert errors[0]['path'] == 'pagination/default_limit'
