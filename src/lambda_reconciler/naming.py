"""Resource naming utilities.

Function names follow the Lambda rules:
- Letters, digits, hyphens and underscores only
- Maximum 64 characters

Auto-created execution roles are named ``<function>-role`` and must fit the
64-character IAM role name limit.
"""

import re

from .exceptions import ValidationError

ROLE_SUFFIX = "-role"
"""Suffix appended to the function name for auto-created execution roles."""

FUNCTION_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

MAX_FUNCTION_NAME_LENGTH = 64
MAX_ROLE_NAME_LENGTH = 64


def validate_function_name(name: str) -> None:
    """
    Validate a Lambda function name.

    Args:
        name: The user-provided function name

    Raises:
        ValidationError: If the name is empty, too long, or has invalid characters
    """
    if not name:
        raise ValidationError("name", name, "Name cannot be empty")

    if " " in name:
        raise ValidationError(
            "name",
            name,
            "Contains spaces. Use hyphens instead (e.g., 'my-fn' not 'my fn')",
        )

    if not FUNCTION_NAME_PATTERN.match(name):
        raise ValidationError(
            "name",
            name,
            "Only letters, digits, hyphens and underscores are allowed.",
        )

    if len(name) > MAX_FUNCTION_NAME_LENGTH:
        raise ValidationError(
            "name",
            name,
            f"Too long. Name exceeds {MAX_FUNCTION_NAME_LENGTH} character limit.",
        )


def role_name_for(function_name: str) -> str:
    """
    Derive the auto-created execution role name for a function.

    The name is deterministic so a later run finds the role by lookup
    instead of creating a second one. Long function names are truncated
    to keep the result within the IAM limit.
    """
    base = function_name[: MAX_ROLE_NAME_LENGTH - len(ROLE_SUFFIX)]
    return f"{base}{ROLE_SUFFIX}"


def role_name_from_arn(role_arn: str) -> str:
    """Extract the role name from an IAM role ARN (path segments dropped)."""
    return role_arn.rsplit("/", 1)[-1]


def resolve_function_name(name: str | None, previous_name: str | None) -> str:
    """Resolve the function name from an explicit value or the persisted state.

    Resolution order: ``name`` arg → name recorded by the previous run.

    Raises:
        ValidationError: If neither source provides a name, or it is invalid.
    """
    resolved = name or previous_name
    if not resolved:
        raise ValidationError(
            "name",
            resolved,
            "No function name given and none recorded by a previous deployment",
        )
    validate_function_name(resolved)
    return resolved
