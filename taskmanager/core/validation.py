"""Declarative request validation.

A rule set is a plain list of :class:`Rule` objects. :func:`run_rules`
evaluates every rule against a payload, normalizes values in place (trim,
lowercase, int conversion) and collects all failures instead of stopping at
the first one.
"""

import re
from typing import Any, Callable, Dict, List, Optional

from email_validator import EmailNotValidError, validate_email
from fastapi import Body, Request

from taskmanager.core.errors import ValidationError

TASK_STATUSES = ("pending", "completed")
TASK_PRIORITIES = ("low", "medium", "high")

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128

PAGE_SIZE_MAX = 100
# OFFSET est un entier SQL signé sur 64 bits
PAGE_MAX = (2 ** 63 - 1) // PAGE_SIZE_MAX + 1

_HAS_LETTER = re.compile(r"[A-Za-z]")
_HAS_DIGIT = re.compile(r"\d")


class Rule:
    """One check applied to one field.

    ``check`` receives the (sanitized) value and returns True when it is
    acceptable. ``sanitize`` may return a replacement value; it must not
    raise. Optional rules are skipped when the field is absent or null.
    """

    def __init__(self, field: str, check: Callable[[Any], bool], message: str,
                 optional: bool = False, sanitize: Optional[Callable[[Any], Any]] = None):
        self.field = field
        self.check = check
        self.message = message
        self.optional = optional
        self.sanitize = sanitize

    def __repr__(self) -> str:
        return f"Rule({self.field!r}, {self.message!r})"


def run_rules(rules: List[Rule], data: Dict[str, Any]) -> List[Dict[str, Any]]:
    errors = []
    failed_fields = set()

    for rule in rules:
        # une seule erreur par champ, comme express-validator en mode bail
        if rule.field in failed_fields:
            continue

        value = data.get(rule.field)
        if rule.optional and value is None:
            continue

        if rule.sanitize is not None:
            value = rule.sanitize(value)
            if rule.field in data:
                data[rule.field] = value

        try:
            ok = bool(rule.check(value))
        except (TypeError, ValueError):
            ok = False

        if not ok:
            failed_fields.add(rule.field)
            errors.append({"field": rule.field, "message": rule.message, "value": data.get(rule.field)})

    return errors


# Sanitizers

def trim(value):
    return value.strip() if isinstance(value, str) else value


def lowercase_email(value):
    return value.strip().lower() if isinstance(value, str) else value


def to_int(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"[+-]?\d+", value.strip()):
        return int(value)
    return value


# Predicates

def is_valid_email(value) -> bool:
    if not isinstance(value, str) or not value or " " in value:
        return False
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def check_password_strength(password) -> Optional[str]:
    """Return why ``password`` is too weak, or None when it is acceptable.

    Registration and password change both go through here.
    """
    if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
    if len(password) > PASSWORD_MAX_LENGTH:
        return f"Password must be less than {PASSWORD_MAX_LENGTH} characters"
    if not _HAS_LETTER.search(password) or not _HAS_DIGIT.search(password):
        return "Password must contain at least one letter and one number"
    return None


def is_non_empty_string(value) -> bool:
    return isinstance(value, str) and len(value) > 0


def length_between(min_length: int, max_length: int) -> Callable[[Any], bool]:
    def check(value) -> bool:
        return isinstance(value, str) and min_length <= len(value) <= max_length
    return check


def one_of(choices) -> Callable[[Any], bool]:
    return lambda value: value in choices


def int_between(minimum: int, maximum: Optional[int] = None) -> Callable[[Any], bool]:
    def check(value) -> bool:
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        return value >= minimum and (maximum is None or value <= maximum)
    return check


def password_rules(field: str) -> List[Rule]:
    return [
        Rule(field, length_between(PASSWORD_MIN_LENGTH, PASSWORD_MAX_LENGTH),
             f"Password must be between {PASSWORD_MIN_LENGTH} and {PASSWORD_MAX_LENGTH} characters"),
        Rule(field, lambda value: check_password_strength(value) is None,
             "Password must contain at least one letter and one number"),
    ]


# Rule sets

EMAIL_RULE = Rule("email", is_valid_email, "Please provide a valid email address", sanitize=lowercase_email)

REGISTER_RULES = [EMAIL_RULE] + password_rules("password")

LOGIN_RULES = [
    EMAIL_RULE,
    Rule("password", is_non_empty_string, "Password is required"),
]

CHANGE_PASSWORD_RULES = [
    Rule("currentPassword", is_non_empty_string, "Current password is required"),
    Rule("newPassword", is_non_empty_string, "New password is required"),
] + password_rules("newPassword")

REFRESH_RULES = [
    Rule("refreshToken", is_non_empty_string, "Refresh token is required"),
]

STATUS_RULE = Rule("status", one_of(TASK_STATUSES), 'Status must be either "pending" or "completed"', optional=True)
PRIORITY_RULE = Rule("priority", one_of(TASK_PRIORITIES), 'Priority must be either "low", "medium", or "high"',
                     optional=True)
DESCRIPTION_RULE = Rule("description", length_between(0, 1000), "Description must be less than 1000 characters",
                        optional=True, sanitize=trim)

TASK_CREATE_RULES = [
    Rule("title", length_between(1, 255), "Title is required and must be between 1 and 255 characters", sanitize=trim),
    DESCRIPTION_RULE,
    STATUS_RULE,
    PRIORITY_RULE,
]

TASK_UPDATE_RULES = [
    Rule("title", length_between(1, 255), "Title must be between 1 and 255 characters", optional=True, sanitize=trim),
    DESCRIPTION_RULE,
    STATUS_RULE,
    PRIORITY_RULE,
]

PAGINATION_RULES = [
    Rule("page", int_between(1, PAGE_MAX), "Page must be a positive integer", optional=True, sanitize=to_int),
    Rule("limit", int_between(1, PAGE_SIZE_MAX), "Limit must be between 1 and 100", optional=True, sanitize=to_int),
    STATUS_RULE,
    PRIORITY_RULE,
]


def validate_payload(rules: List[Rule], data: Dict[str, Any]) -> Dict[str, Any]:
    errors = run_rules(rules, data)
    if errors:
        raise ValidationError("Validation failed", errors)
    return data


# FastAPI dependencies

def validated_body(rules: List[Rule]):
    def dependency(payload: Any = Body(None)) -> Dict[str, Any]:
        # JSON invalide : rejeté par FastAPI avant d'arriver ici
        data = {} if payload is None else payload
        if not isinstance(data, dict):
            raise ValidationError("Validation failed", [
                {"field": "body", "message": "Request body must be a JSON object", "value": data}
            ])
        return validate_payload(rules, data)
    return dependency


def validated_query(rules: List[Rule]):
    def dependency(request: Request) -> Dict[str, Any]:
        return validate_payload(rules, dict(request.query_params))
    return dependency
