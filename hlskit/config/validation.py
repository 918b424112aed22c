"""Schema validation helpers for hlskit.

Validators are small composable callables. Each one receives a value and the
path at which it was found and returns the list of issues it detected. Object
and array validators run every nested validator, so a single pass reports all
problems in a document rather than stopping at the first one.

Example:
    >>> schema = obj({"name": string(), "tags": optional(array(string()))})
    >>> check({"name": 1, "tags": ["a", 2]}, schema)
    [ValidationIssue(path=('name',), message='expected a string, got int'),
     ValidationIssue(path=('tags', 1), message='expected a string, got int')]
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Sequence, Tuple, Union

from hlskit.core.exceptions import ValidationError

PathElement = Union[str, int]
IssuePath = Tuple[PathElement, ...]


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation issue."""

    path: IssuePath  # Sequence of keys/indices leading to the value
    message: str  # Human-readable message

    def __str__(self) -> str:
        location = ".".join(str(p) for p in self.path) or "<root>"
        return f"{location}: {self.message}"


Validator = Callable[[Any, IssuePath], List[ValidationIssue]]


def _type_name(value: Any) -> str:
    return "null" if value is None else type(value).__name__


def string() -> Validator:
    """Accept any ``str``."""

    def validate(value: Any, path: IssuePath) -> List[ValidationIssue]:
        if isinstance(value, str):
            return []
        return [ValidationIssue(path, f"expected a string, got {_type_name(value)}")]

    return validate


def boolean() -> Validator:
    """Accept ``True`` or ``False``."""

    def validate(value: Any, path: IssuePath) -> List[ValidationIssue]:
        if isinstance(value, bool):
            return []
        return [ValidationIssue(path, f"expected a boolean, got {_type_name(value)}")]

    return validate


def one_of(*choices: Any) -> Validator:
    """Accept exactly one of ``choices``."""

    def validate(value: Any, path: IssuePath) -> List[ValidationIssue]:
        if value in choices:
            return []
        allowed = ", ".join(repr(c) for c in choices)
        return [ValidationIssue(path, f"expected one of {allowed}, got {value!r}")]

    return validate


def optional(inner: Validator) -> Validator:
    """Accept ``None`` (or a missing key) in addition to what ``inner`` accepts."""

    def validate(value: Any, path: IssuePath) -> List[ValidationIssue]:
        if value is None:
            return []
        return inner(value, path)

    return validate


def array(item: Validator) -> Validator:
    """Accept a list whose every element satisfies ``item``."""

    def validate(value: Any, path: IssuePath) -> List[ValidationIssue]:
        if not isinstance(value, list):
            return [ValidationIssue(path, f"expected an array, got {_type_name(value)}")]
        issues: List[ValidationIssue] = []
        for index, element in enumerate(value):
            issues.extend(item(element, path + (index,)))
        return issues

    return validate


def dict_of(item: Validator) -> Validator:
    """Accept a mapping with string keys whose every value satisfies ``item``."""

    def validate(value: Any, path: IssuePath) -> List[ValidationIssue]:
        if not isinstance(value, dict):
            return [ValidationIssue(path, f"expected an object, got {_type_name(value)}")]
        issues: List[ValidationIssue] = []
        for key, element in value.items():
            if not isinstance(key, str):
                issues.append(
                    ValidationIssue(path, f"expected string keys, got {_type_name(key)}")
                )
                continue
            issues.extend(item(element, path + (key,)))
        return issues

    return validate


def obj(fields: Mapping[str, Validator], strict: bool = False) -> Validator:
    """
    Accept a mapping whose listed keys satisfy their validators.

    A missing key is validated as ``None``, so it is only accepted when the
    field is wrapped in :func:`optional`.

    Args:
        fields: Validator per known key
        strict: Report keys that are not listed in ``fields``
    """

    def validate(value: Any, path: IssuePath) -> List[ValidationIssue]:
        if not isinstance(value, dict):
            return [ValidationIssue(path, f"expected an object, got {_type_name(value)}")]
        issues: List[ValidationIssue] = []
        for key, field_validator in fields.items():
            if key not in value:
                missing = field_validator(None, path + (key,))
                if missing:
                    issues.append(ValidationIssue(path + (key,), "is required"))
                continue
            issues.extend(field_validator(value[key], path + (key,)))
        if strict:
            for key in value:
                if key not in fields:
                    issues.append(ValidationIssue(path + (str(key),), "unknown key"))
        return issues

    return validate


def check(value: Any, validator: Validator) -> List[ValidationIssue]:
    """Return every issue ``validator`` finds in ``value``."""
    return validator(value, ())


def validate(value: Any, validator: Validator, subject: str = "value") -> Any:
    """
    Validate ``value`` and return it unchanged.

    Args:
        value: Parsed document
        validator: Schema to check against
        subject: Name of the document used in the error message

    Returns:
        ``value``

    Raises:
        ValidationError: Carrying every issue found
    """
    issues = check(value, validator)
    if issues:
        raise ValidationError(issues, subject)
    return value


def format_issues(issues: Sequence[ValidationIssue]) -> str:
    """Format issues one per line for display."""
    return "\n".join(f"  {issue}" for issue in issues)


__all__ = [
    "ValidationIssue",
    "Validator",
    "array",
    "boolean",
    "check",
    "dict_of",
    "format_issues",
    "obj",
    "one_of",
    "optional",
    "string",
    "validate",
]
