"""Name validation for modules, services and tests.

Names end up in task keys ("deploy.web.v-...") and environment variable
names, so they are kept to a small character set.
"""

from __future__ import annotations

import re

from sprig.core.errors import ConfigurationError

# Lowercase alphanumeric, dashes inside only. Single-char names allowed.
NAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")

MAX_NAME_LENGTH = 63


def validate_name(name: str, entity: str = "name") -> None:
    """Validate a module/service/test name.

    Args:
        name: The name to validate.
        entity: What the name is for (used in error messages).

    Raises:
        ConfigurationError: If the name is invalid.

    Example:
        >>> validate_name("api", "module")        # OK
        >>> validate_name("redis-1", "service")   # OK
        >>> validate_name("My Service", "service")  # ConfigurationError
    """
    entity_cap = entity.capitalize()

    if not name or not isinstance(name, str):
        raise ConfigurationError(f"{entity_cap} name is required")

    if len(name) > MAX_NAME_LENGTH:
        raise ConfigurationError(
            f"{entity_cap} name '{name}' must be {MAX_NAME_LENGTH} characters or less"
        )

    if not NAME_PATTERN.match(name):
        raise ConfigurationError(
            f"{entity_cap} name '{name}' must be lowercase alphanumeric with dashes, "
            f"cannot start or end with dash",
            detail={"entity": entity, "name": name},
        )


def env_name(name: str) -> str:
    """Environment-variable form of a name: ``redis-1`` -> ``REDIS_1``."""
    return name.upper().replace("-", "_")
