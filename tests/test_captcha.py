"""
Tests for the captcha store
"""
import base64
import random

import pytest
from unittest.mock import patch

from captcha import CAPTCHA_ALPHABET, CaptchaStore, TooManyAttempts, render_captcha_svg
from exceptions import ValidationException

NOW = 1_700_000_000.0


@pytest.fixture
def store():
    return CaptchaStore()


@pytest.fixture
def challenge(store):
    with patch.object(CaptchaStore, 'generate_text', return_value='AB12C'):
        captcha_id, _ = store.create(now=NOW)
    return captcha_id


class TestRender:

    def test_svg_contains_each_character(self):
        svg = render_captcha_svg('XY7QZ', rng=random.Random(1))

        assert svg.startswith('<svg width="150" height="60"')
        assert svg.endswith('</svg>')
        for char in 'XY7QZ':
            assert f'>{char}</text>' in svg

    def test_create_returns_data_url(self, store):
        captcha_id, image = store.create(now=NOW)

        assert captcha_id
        assert image.startswith('data:image/svg+xml;base64,')
        assert base64.b64decode(image.split(',', 1)[1]).startswith(b'<svg')
        assert len(store) == 1

    def test_generated_text(self):
        text = CaptchaStore.generate_text()
        assert len(text) == 5
        assert all(c in CAPTCHA_ALPHABET for c in text)


class TestVerify:

    def test_case_insensitive_and_single_use(self, store, challenge):
        assert store.verify(challenge, ' ab12c ', now=NOW + 1) == {'valid': True}

        with pytest.raises(ValidationException, match='CAPTCHA expired or invalid'):
            store.verify(challenge, 'AB12C', now=NOW + 2)

    def test_wrong_answer_counts_down(self, store, challenge):
        assert store.verify(challenge, 'nope', now=NOW) == {'valid': False, 'attemptsRemaining': 4}
        assert store.verify(challenge, 'nope', now=NOW) == {'valid': False, 'attemptsRemaining': 3}

    def test_sixth_attempt_rejected(self, store, challenge):
        for _ in range(5):
            store.verify(challenge, 'nope', now=NOW)

        with pytest.raises(TooManyAttempts):
            store.verify(challenge, 'AB12C', now=NOW)
        assert len(store) == 0

    def test_expired(self, store, challenge):
        with pytest.raises(ValidationException, match='CAPTCHA expired'):
            store.verify(challenge, 'AB12C', now=NOW + 601)

    def test_missing_fields(self, store):
        with pytest.raises(ValidationException, match='Missing CAPTCHA ID or answer'):
            store.verify('', 'AB12C')

    def test_purge_expired(self, store, challenge):
        store.create(now=NOW + 300)

        assert store.purge_expired(now=NOW + 700) == 1
        assert len(store) == 1
