"""
Captcha Store
Distorted SVG text challenges kept in memory for ten minutes
"""

import base64
import random
import secrets
import string
import threading
import time
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from exceptions import ValidationException

logger = logging.getLogger("main")

CAPTCHA_ALPHABET = string.ascii_uppercase + string.digits
CAPTCHA_LENGTH = 5
CAPTCHA_TTL_SECONDS = 10 * 60
MAX_ATTEMPTS = 5

_TEXT_COLORS = ["#333", "#555", "#777", "#222", "#444"]
_BACKGROUND_COLORS = ["#f0f0f0", "#e8e8e8", "#f5f5f5", "#eeeeee"]


class TooManyAttempts(Exception):
    pass


@dataclass
class CaptchaEntry:
    text: str
    expires: float
    attempts: int = 0


def render_captcha_svg(text: str, rng: Optional[random.Random] = None) -> str:
    """150x60 SVG with per-character rotation and skew plus noise shapes"""
    rng = rng or random.Random()
    parts = [
        '<svg width="150" height="60" xmlns="http://www.w3.org/2000/svg">',
        '<defs>',
        '<pattern id="noise" patternUnits="userSpaceOnUse" width="3" height="3">',
        '<circle cx="1.5" cy="1.5" r="0.5" fill="#ddd" opacity="0.4"/>',
        '</pattern>',
        '<filter id="roughpaper" x="0%" y="0%" width="100%" height="100%">',
        '<feTurbulence baseFrequency="0.04" numOctaves="5" result="noise" seed="1"/>',
        '<feDiffuseLighting in="noise" lighting-color="white" surfaceScale="1">',
        '<feDistantLight azimuth="45" elevation="60"/>',
        '</feDiffuseLighting>',
        '</filter>',
        '</defs>',
        f'<rect width="150" height="60" fill="{rng.choice(_BACKGROUND_COLORS)}" filter="url(#roughpaper)" opacity="0.8"/>',
        '<rect width="150" height="60" fill="url(#noise)"/>',
    ]
    for _ in range(3):
        parts.append(
            f'<line x1="{rng.uniform(0, 150):.1f}" y1="{rng.uniform(0, 60):.1f}" '
            f'x2="{rng.uniform(0, 150):.1f}" y2="{rng.uniform(0, 60):.1f}" '
            f'stroke="#ccc" stroke-width="{rng.uniform(0.5, 2.5):.1f}" opacity="0.6"/>'
        )
    for _ in range(8):
        parts.append(
            f'<circle cx="{rng.uniform(0, 150):.1f}" cy="{rng.uniform(0, 60):.1f}" '
            f'r="{rng.uniform(1, 3):.1f}" fill="#ddd" opacity="0.5"/>'
        )

    parts.append('<g font-family="Arial, sans-serif" font-size="24" font-weight="bold" text-anchor="middle">')
    for i, char in enumerate(text):
        x = 25 + i * 25
        y = 35
        parts.append(
            f'<text x="{x}" y="{y}" fill="{rng.choice(_TEXT_COLORS)}" '
            f'transform="rotate({rng.uniform(-15, 15):.1f} {x} {y}) skewX({rng.uniform(-5, 5):.1f})" '
            f'opacity="0.9">{char}</text>'
        )
    parts.append('</g>')

    for _ in range(2):
        parts.append(
            f'<line x1="10" y1="{rng.uniform(0, 60):.1f}" x2="140" y2="{rng.uniform(0, 60):.1f}" '
            'stroke="#999" stroke-width="1" opacity="0.4"/>'
        )
    for _ in range(3):
        parts.append(
            f'<ellipse cx="{rng.uniform(0, 150):.1f}" cy="{rng.uniform(0, 60):.1f}" '
            f'rx="{rng.uniform(2, 10):.1f}" ry="{rng.uniform(2, 10):.1f}" '
            'fill="none" stroke="#ccc" stroke-width="1" opacity="0.3"/>'
        )
    parts.append('</svg>')
    return "\n".join(parts)


class CaptchaStore:
    def __init__(self, ttl_seconds: int = CAPTCHA_TTL_SECONDS, max_attempts: int = MAX_ATTEMPTS):
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self._entries: Dict[str, CaptchaEntry] = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    @staticmethod
    def generate_text() -> str:
        return "".join(secrets.choice(CAPTCHA_ALPHABET) for _ in range(CAPTCHA_LENGTH))

    def create(self, now: Optional[float] = None) -> Tuple[str, str]:
        """
        Create a challenge.

        Returns:
            (captcha id, data URL of the SVG image)
        """
        now = time.time() if now is None else now
        text = self.generate_text()
        captcha_id = secrets.token_urlsafe(12)
        with self._lock:
            self._entries[captcha_id] = CaptchaEntry(text=text.lower(), expires=now + self.ttl_seconds)

        svg = render_captcha_svg(text)
        encoded = base64.b64encode(svg.encode("utf-8")).decode("ascii")
        return captcha_id, f"data:image/svg+xml;base64,{encoded}"

    def verify(self, captcha_id: str, answer: str, now: Optional[float] = None) -> Dict:
        """
        Check an answer. A correct answer consumes the challenge.

        Raises:
            ValidationException: missing fields, unknown or expired challenge
            TooManyAttempts: more than max_attempts answers were submitted
        """
        if not captcha_id or not answer:
            raise ValidationException("Missing CAPTCHA ID or answer")

        now = time.time() if now is None else now
        with self._lock:
            entry = self._entries.get(captcha_id)
            if entry is None:
                raise ValidationException("CAPTCHA expired or invalid")
            if entry.expires < now:
                del self._entries[captcha_id]
                raise ValidationException("CAPTCHA expired")

            entry.attempts += 1
            if entry.attempts > self.max_attempts:
                del self._entries[captcha_id]
                raise TooManyAttempts("Too many attempts. Please refresh and try again.")

            if entry.text == str(answer).strip().lower():
                del self._entries[captcha_id]
                return {"valid": True}
            return {"valid": False, "attemptsRemaining": self.max_attempts - entry.attempts}

    def purge_expired(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        with self._lock:
            expired = [cid for cid, entry in self._entries.items() if entry.expires < now]
            for cid in expired:
                del self._entries[cid]
        if expired:
            logger.debug(f"Purged {len(expired)} expired captcha(s)")
        return len(expired)
