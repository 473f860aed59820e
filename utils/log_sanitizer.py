"""Log sanitizer - keeps device tokens and credentials out of log files.

Push tokens are long-lived and anyone holding one can message the device, so
logs only ever see a masked prefix/suffix. Service credentials (Supabase
service key, FCM access token, Anthropic key) are redacted wherever they
appear in exception text.
"""

import logging
import re
from typing import Iterable, Optional

# (pattern, replacement), applied in order
REDACTIONS = [
    # Authorization headers echoed back in errors
    (r'(Bearer|Basic)\s+[A-Za-z0-9\-_\.]+', r'\1 [REDACTED]'),

    # Supabase keys are JWTs
    (r'eyJ[A-Za-z0-9\-_]+\.eyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+', '[JWT]'),

    # Anthropic API keys
    (r'sk-ant-[A-Za-z0-9\-_]{10,}', '[ANTHROPIC_KEY]'),

    # Google OAuth access tokens (FCM HTTP v1)
    (r'ya29\.[A-Za-z0-9\-_\.]+', '[GOOGLE_TOKEN]'),

    # FCM registration tokens ("<instance id>:APA91b...")
    (r'\b[A-Za-z0-9\-_]{8,}:APA91[A-Za-z0-9\-_]{20,}', '[FCM_TOKEN]'),

    # apikey=..., "token": "..." and friends
    (r'(apikey|api_key|access_token|token|secret)(["\']?\s*[:=]\s*["\']?)[^\s,}"\'&]{8,}',
     r'\1\2[REDACTED]'),

    # Email addresses (account identifiers in store errors)
    (r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b', '[EMAIL]'),
]

_COMPILED = [(re.compile(p, re.IGNORECASE), r) for p, r in REDACTIONS]


def sanitize_log(text: str) -> str:
    """Redact credentials and tokens from a log line."""
    if not text:
        return text
    for pattern, replacement in _COMPILED:
        text = pattern.sub(replacement, text)
    return text


def mask_token(token: Optional[str], visible: int = 4) -> str:
    """Mask a device token, keeping only a short prefix and suffix.

    Args:
        token: Device token to mask
        visible: Characters kept at each end

    Returns:
        Masked token like "abcd…wxyz"
    """
    if not token:
        return "<none>"
    if len(token) <= visible * 2:
        return "*" * len(token)
    return f"{token[:visible]}…{token[-visible:]}"


def mask_tokens(tokens: Iterable[str]) -> str:
    """Mask a collection of tokens into one log-friendly string."""
    return ", ".join(mask_token(t) for t in tokens)


class SanitizingFilter(logging.Filter):
    """Logging filter that runs every formatted message through sanitize_log."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = sanitize_log(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True
