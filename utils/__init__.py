"""Utility modules for Nudge."""

from .log_sanitizer import SanitizingFilter, sanitize_log, mask_token, mask_tokens

__all__ = ["SanitizingFilter", "sanitize_log", "mask_token", "mask_tokens"]
