"""
auth/validation.py -- Input policy for names, emails, passwords and plans.

Each validator returns the list of violated rules as catalog message keys
("validation.password.missing_digit"); an empty list means the value is
acceptable. All rules are evaluated so a client sees every problem at once.

Policy:
  name     -- 2..100 characters after trimming, letters and whitespace only.
  email    -- 5..254 ASCII characters without spaces, exactly one '@', a
              non-empty local part, a dotted domain with at least 2
              characters before its first dot, a TLD of 2+ letters, and no
              leading, trailing or doubled dots. Whatever passes those rules
              must also be a well-formed address (RFC 5322 syntax).
  password -- 8..128 characters, no whitespace, at least one ASCII uppercase
              letter, one ASCII lowercase letter, one ASCII digit and one
              character that is neither a letter nor a digit.
  plan     -- Free, Pro or Enterprise (case-insensitive).
"""

from __future__ import annotations

import string

from email_validator import EmailNotValidError
from email_validator import validate_email as check_address_syntax

from auth.errors import InvalidInput
from auth.models import SubscriptionPlan

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 100

MIN_EMAIL_LENGTH = 5
MAX_EMAIL_LENGTH = 254
MIN_DOMAIN_SEGMENT_LENGTH = 2
MIN_TLD_LENGTH = 2

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128


def validate_name(name: str) -> list[str]:
    stripped = name.strip()
    if not stripped:
        return ["validation.name.empty"]
    errors: list[str] = []
    if len(stripped) < MIN_NAME_LENGTH:
        errors.append("validation.name.too_short")
    if len(stripped) > MAX_NAME_LENGTH:
        errors.append("validation.name.too_long")
    if not all(c.isalpha() or c.isspace() for c in stripped):
        errors.append("validation.name.invalid_chars")
    return errors


def validate_email(email: str) -> list[str]:
    email = email.strip()
    errors: list[str] = []

    if len(email) < MIN_EMAIL_LENGTH:
        errors.append("validation.email.too_short")
    if len(email) > MAX_EMAIL_LENGTH:
        errors.append("validation.email.too_long")
    if any(c.isspace() or not c.isascii() for c in email):
        errors.append("validation.email.invalid_chars")
    if ".." in email:
        errors.append("validation.email.consecutive_dots")
    if email.startswith(".") or email.endswith("."):
        errors.append("validation.email.starts_or_ends_with_dot")
    if "." not in email:
        errors.append("validation.email.missing_dot")

    if email.count("@") != 1:
        errors.append("validation.email.missing_at")
        return errors

    local, domain = email.split("@")
    if "." in email and email.index("@") > email.rindex("."):
        errors.append("validation.email.at_before_dot")
    if not local:
        errors.append("validation.email.missing_local_part")
    if not domain:
        errors.append("validation.email.missing_domain")
        return errors

    if domain.startswith("."):
        errors.append("validation.email.domain_starts_with_dot")
    if "." not in domain:
        errors.append("validation.email.invalid_domain")
        return errors
    if domain.index(".") < MIN_DOMAIN_SEGMENT_LENGTH:
        errors.append("validation.email.invalid_domain_length")
    tld = domain.rsplit(".", 1)[1]
    if len(tld) < MIN_TLD_LENGTH or not tld.isalpha():
        errors.append("validation.email.invalid_tld")
    if not errors:
        try:
            check_address_syntax(email, check_deliverability=False)
        except EmailNotValidError:
            errors.append("validation.email.invalid")
    return errors


def validate_password(password: str) -> list[str]:
    errors: list[str] = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append("validation.password.too_short")
    if len(password) > MAX_PASSWORD_LENGTH:
        errors.append("validation.password.too_long")
    if any(c.isspace() for c in password):
        errors.append("validation.password.contains_space")
    if not any(c in string.ascii_uppercase for c in password):
        errors.append("validation.password.missing_uppercase")
    if not any(c in string.ascii_lowercase for c in password):
        errors.append("validation.password.missing_lowercase")
    if not any(c in string.digits for c in password):
        errors.append("validation.password.missing_digit")
    if not any(not c.isalnum() and not c.isspace() for c in password):
        errors.append("validation.password.missing_special_char")
    return errors


def parse_plan(value: str | SubscriptionPlan | None) -> SubscriptionPlan:
    """Resolve a plan name, defaulting to Free. Raises InvalidInput."""
    if value is None:
        return SubscriptionPlan.FREE
    if isinstance(value, SubscriptionPlan):
        return value
    try:
        return SubscriptionPlan.parse(value)
    except ValueError as exc:
        raise InvalidInput(details={"subscription_plan": ["validation.plan.invalid"]}) from exc


def check_registration(name: str, email: str, password: str) -> None:
    """Raise InvalidInput carrying every violated rule, keyed by field."""
    details = {
        field: errors
        for field, errors in (
            ("name", validate_name(name)),
            ("email", validate_email(email)),
            ("password", validate_password(password)),
        )
        if errors
    }
    if details:
        raise InvalidInput("auth.register.invalid_data", details=details)
