"""
Route Parameter Validation.

Vanity codes and user ids are checked here before anything touches the
network. Validators are pure: they either return the normalized value or
raise `ValidationError` naming the rule that failed.
"""

import re
import time
from typing import Optional

from core.exceptions import ValidationError
from core.logging_config import get_logger

logger = get_logger(__name__)

# Milliseconds since the Unix epoch at 2015-01-01T00:00:00Z
DISCORD_EPOCH_MS = 1420070400000


class InputValidator:
    """Validation of lookup route parameters"""

    VANITY_MIN_LENGTH = 2
    VANITY_MAX_LENGTH = 32
    VANITY_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
    VANITY_SEPARATORS = ("-", "_")

    USER_ID_PATTERN = re.compile(r"^\d{17,20}$")

    @staticmethod
    def validate_vanity_code(code: Optional[str]) -> str:
        """Validate a vanity invite code"""
        code = (code or "").strip()

        if not code:
            raise ValidationError("code", code, "Vanity URL is required")

        if len(code) < InputValidator.VANITY_MIN_LENGTH:
            raise ValidationError(
                "code", code, "Vanity URL must be at least 2 characters"
            )

        if len(code) > InputValidator.VANITY_MAX_LENGTH:
            raise ValidationError(
                "code", code, "Vanity URL cannot exceed 32 characters"
            )

        if not InputValidator.VANITY_PATTERN.match(code):
            raise ValidationError(
                "code",
                code,
                "Vanity URL can only contain letters, numbers, hyphens, and underscores",
            )

        if code.startswith(InputValidator.VANITY_SEPARATORS) or code.endswith(
            InputValidator.VANITY_SEPARATORS
        ):
            raise ValidationError(
                "code",
                code,
                "Vanity URL cannot start or end with hyphen or underscore",
            )

        return code

    @staticmethod
    def validate_user_id(user_id: Optional[str], now_ms: Optional[int] = None) -> str:
        """Validate a snowflake user id"""
        user_id = (user_id or "").strip()

        if not user_id:
            raise ValidationError("user_id", user_id, "User ID is required")

        if not InputValidator.USER_ID_PATTERN.match(user_id):
            raise ValidationError(
                "user_id", user_id, "Discord ID must be 17-20 digits"
            )

        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        if snowflake_timestamp_ms(user_id) > now_ms:
            raise ValidationError("user_id", user_id, "Invalid Discord ID format")

        return user_id


def snowflake_timestamp_ms(snowflake: str) -> int:
    """Creation time encoded in the high bits of a snowflake id"""
    return (int(snowflake) >> 22) + DISCORD_EPOCH_MS
