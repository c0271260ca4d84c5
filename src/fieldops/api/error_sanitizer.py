"""
Error message sanitization for API responses.

Backend and transport errors can carry the provisioning URL, bearer
tokens or the database DSN. Anything that reaches an HTTP client goes
through sanitize_error_message first; the original text is only logged.

Usage:
    from src.fieldops.api.error_sanitizer import sanitize_error_message

    try:
        await client.post(endpoint, body)
    except NetworkError as e:
        logger.error(f"Backend unreachable: {e}")
        raise HTTPException(502, detail=sanitize_error_message(str(e)))
"""

import re
from dataclasses import dataclass
from typing import Optional


@dataclass
class SanitizationResult:
    """Result of error message sanitization."""

    sanitized_message: str
    redaction_count: int

    @property
    def was_sanitized(self) -> bool:
        return self.redaction_count > 0


class ErrorSanitizer:
    """Redacts credentials, connection strings and hosts from messages.

    Attributes:
        patterns: List of (regex_pattern, replacement) tuples
        max_message_length: Maximum length of sanitized messages
    """

    # Order matters: DSNs before generic password patterns
    DEFAULT_PATTERNS: list[tuple[str, str]] = [
        (r'postgres(ql)?://[^\s\n]+', '[DATABASE_URL]'),
        (r'https?://[^\s\n]+', '[URL]'),

        (r'bearer\s+[A-Za-z0-9_\-\.]+', 'Bearer [REDACTED]'),
        (r'authorization[:\s]+[^\s\n]+', 'Authorization: [REDACTED]'),
        (r'api[-_]?key[=:\s]+[^\s\n,;]+', 'api_key=[REDACTED]'),
        (r'token[=:\s]+[^\s\n,;]+', 'token=[REDACTED]'),
        (r'password[=:\s]+[^\s\n,;]+', 'password=[REDACTED]'),

        (r'\b(PROVISIONING_API_TOKEN|PROVISIONING_BASE_URL)\b', '[ENV_VAR]'),
        (r'DATABASE_URL[=:\s]', '[ENV_VAR]='),

        (r'/(?:home|root|usr|var|etc|opt|mnt)/[^\s\n,;]+', '[FILE_PATH]'),
        (r'Traceback \(most recent call last\):[\s\S]*?(?=\n\n|\n[A-Z]|\Z)', '[STACK_TRACE]'),

        (r'\b(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\b', '[IP_ADDRESS]'),
    ]

    def __init__(
        self,
        patterns: Optional[list[tuple[str, str]]] = None,
        max_message_length: int = 500,
    ):
        self.patterns = list(patterns or self.DEFAULT_PATTERNS)
        self.max_message_length = max_message_length
        self._compiled_patterns = [
            (re.compile(pattern, re.IGNORECASE), replacement)
            for pattern, replacement in self.patterns
        ]

    def sanitize(self, message: str, error_type: Optional[str] = None) -> SanitizationResult:
        """Sanitize an error message for client exposure.

        Args:
            message: Raw error message
            error_type: Optional prefix such as "Backend error"

        Returns:
            SanitizationResult with the safe message
        """
        if not message:
            return SanitizationResult(sanitized_message="An error occurred", redaction_count=0)

        sanitized = message
        redaction_count = 0
        for pattern, replacement in self._compiled_patterns:
            matches = len(pattern.findall(sanitized))
            if matches:
                redaction_count += matches
                sanitized = pattern.sub(replacement, sanitized)

        if len(sanitized) > self.max_message_length:
            sanitized = sanitized[: self.max_message_length] + "... [TRUNCATED]"

        if not sanitized.strip():
            sanitized = "An error occurred"

        if error_type and not sanitized.startswith(error_type):
            sanitized = f"{error_type}: {sanitized}"

        return SanitizationResult(sanitized_message=sanitized, redaction_count=redaction_count)

    def is_safe(self, message: str) -> bool:
        return not any(pattern.search(message) for pattern, _ in self._compiled_patterns)


_default_sanitizer: Optional[ErrorSanitizer] = None


def get_sanitizer() -> ErrorSanitizer:
    """Get the default error sanitizer instance."""
    global _default_sanitizer
    if _default_sanitizer is None:
        _default_sanitizer = ErrorSanitizer()
    return _default_sanitizer


def sanitize_error_message(message: str, error_type: Optional[str] = None) -> str:
    """Convenience wrapper around the default sanitizer.

    Example:
        >>> sanitize_error_message("Cannot reach https://prov.internal/api/x")
        'Cannot reach [URL]'
    """
    return get_sanitizer().sanitize(message, error_type).sanitized_message
