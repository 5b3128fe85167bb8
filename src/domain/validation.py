"""
Validation engine - Pure field validators for registration data.

Every validator is synchronous and side-effect free, and returns a
ValidationResult. Failure messages are written for end users and are
safe to return verbatim.

GSTN Checksum
=============

A GSTN is 15 characters: 2-digit jurisdiction code (01-37), a 10-character
PAN (5 letters, 4 digits, 1 letter), an entity character (1-9 or A-Z),
the literal ``Z`` and a check character.

The check character is a base-36 Luhn variant over the alphabet ``0-9A-Z``
(each symbol's index is its value). For position i in 0..13 the value is
doubled when ``(14 - i)`` is even; a doubled value above 35 is folded to
``value // 36 + value % 36``. With ``total`` the sum of the 14 values, the
check index is ``(36 - total % 36) % 36``.
"""

import re
from dataclasses import dataclass
from enum import Enum

GSTN_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
GSTN_LENGTH = 15

_EMAIL_RE = re.compile(
    r"[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*"
)
_LOCAL_PHONE_RE = re.compile(r"[6-9][0-9]{9}")
_E164_PHONE_RE = re.compile(r"\+[1-9][0-9]{1,14}")
_PHONE_NOISE_RE = re.compile(r"[\s\-()]")
_GSTN_BODY_RE = re.compile(r"[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]")
_NAME_RE = re.compile(r"[a-zA-Z\s'-]+")
_USERNAME_RE = re.compile(r"[a-zA-Z0-9._-]{3,50}")
_DOMAIN_RE = re.compile(r"[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9]?\.[a-zA-Z]{2,}")
_SYMBOL_RE = re.compile(r"""[!@#$%^&*()_+\-=\[\]{};':"\\|,.<>/?`~]""")

COMMON_PASSWORDS = (
    "password", "password123", "123456", "12345678", "qwerty", "abc123",
    "monkey", "1234567", "letmein", "trustno1", "dragon", "baseball",
    "iloveyou", "master", "sunshine", "ashley", "bailey", "shadow",
    "superman", "qazwsx", "michael", "football", "123456789", "welcome",
    "admin", "login", "passw0rd", "password1", "12345",
)

SEQUENCES = (
    "0123456789",
    "abcdefghijklmnopqrstuvwxyz",
    "qwertyuiop",
    "asdfghjkl",
    "zxcvbnm",
)


class ValidationFailureKind(str, Enum):
    """Distinguishable reasons a value failed validation."""

    REQUIRED = "required"
    LENGTH = "length"
    FORMAT = "format"
    JURISDICTION = "jurisdiction"
    CHECKSUM = "checksum"
    MISMATCH = "mismatch"
    COMPLEXITY = "complexity"
    COMMON = "common"
    SEQUENTIAL = "sequential"


@dataclass(frozen=True)
class ValidationResult:
    """Pass/fail result with a human-readable reason on failure."""

    is_valid: bool
    error: str | None = None
    failure: ValidationFailureKind | None = None

    def __bool__(self) -> bool:
        return self.is_valid


VALID = ValidationResult(is_valid=True)


def _fail(kind: ValidationFailureKind, error: str) -> ValidationResult:
    return ValidationResult(is_valid=False, error=error, failure=kind)


def validate_email(email: str | None) -> ValidationResult:
    """Validate email format (RFC 5322 approximation)."""
    if not email:
        return _fail(ValidationFailureKind.REQUIRED, "Email is required")

    if not _EMAIL_RE.fullmatch(email):
        return _fail(ValidationFailureKind.FORMAT, "Invalid email format")

    if len(email) > 254 or len(email.rsplit("@", 1)[1]) > 253:
        return _fail(ValidationFailureKind.LENGTH, "Email is too long")

    return VALID


def normalize_phone(phone: str) -> str:
    """Strip spaces, dashes and parentheses from a phone number."""
    return _PHONE_NOISE_RE.sub("", phone)


def validate_phone(phone: str | None) -> ValidationResult:
    """Validate a 10-digit local number (starting 6-9) or an E.164 number."""
    if not phone:
        return _fail(ValidationFailureKind.REQUIRED, "Phone number is required")

    clean = normalize_phone(phone)
    if _LOCAL_PHONE_RE.fullmatch(clean) or _E164_PHONE_RE.fullmatch(clean):
        return VALID

    return _fail(
        ValidationFailureKind.FORMAT,
        "Invalid phone number format. Use 10-digit format (e.g., 9876543210) "
        "or E.164 format (e.g., +919876543210)",
    )


def normalize_gstn(gstn: str) -> str:
    """Remove whitespace and upper-case a GSTN."""
    return "".join(gstn.split()).upper()


def gstn_check_character(prefix: str) -> str:
    """
    Compute the check character for the first 14 characters of a GSTN.

    Raises:
        ValueError: If prefix is not 14 characters from the GSTN alphabet
    """
    if len(prefix) != GSTN_LENGTH - 1:
        raise ValueError("GSTN prefix must be exactly 14 characters")

    total = 0
    for i, char in enumerate(prefix):
        value = GSTN_ALPHABET.index(char)
        if (14 - i) % 2 == 0:
            value *= 2
        if value > 35:
            value = value // 36 + value % 36
        total += value

    return GSTN_ALPHABET[(36 - total % 36) % 36]


def validate_gstn(gstn: str | None) -> ValidationResult:
    """Validate GSTN length, jurisdiction code, structure and checksum."""
    if not gstn:
        return _fail(ValidationFailureKind.REQUIRED, "GSTN is required")

    clean = normalize_gstn(gstn)

    if len(clean) != GSTN_LENGTH:
        return _fail(ValidationFailureKind.LENGTH, "GSTN must be exactly 15 characters")

    format_error = _fail(
        ValidationFailureKind.FORMAT,
        "Invalid GSTN format. GSTN should follow the format: 27AAPFU0939F1ZT",
    )

    state_code = clean[:2]
    if not (state_code.isascii() and state_code.isdigit()):
        return format_error
    if not 1 <= int(state_code) <= 37:
        return _fail(ValidationFailureKind.JURISDICTION, "Invalid state code in GSTN")

    if not _GSTN_BODY_RE.fullmatch(clean[2:]):
        return format_error

    if gstn_check_character(clean[:14]) != clean[14]:
        return _fail(ValidationFailureKind.CHECKSUM, "Invalid GSTN checksum")

    return VALID


def _has_sequential_run(password: str) -> bool:
    lowered = password.lower()
    for sequence in SEQUENCES:
        for i in range(len(sequence) - 2):
            run = sequence[i : i + 3]
            if run in lowered or run[::-1] in lowered:
                return True
    return False


def validate_password(password: str | None, confirm_password: str | None = None) -> ValidationResult:
    """
    Validate password strength.

    Rules, in order: confirmation matches (when supplied), 8-128 characters,
    at least 3 of {upper, lower, digit, symbol}, no common password as a
    substring, no 3-character keyboard/alphabet/digit run or its reverse.
    """
    if not password:
        return _fail(ValidationFailureKind.REQUIRED, "Password is required")

    if confirm_password is not None and password != confirm_password:
        return _fail(ValidationFailureKind.MISMATCH, "Passwords do not match")

    if len(password) < 8:
        return _fail(ValidationFailureKind.LENGTH, "Password must be at least 8 characters long")

    if len(password) > 128:
        return _fail(
            ValidationFailureKind.LENGTH, "Password is too long (maximum 128 characters)"
        )

    classes = [
        any(c.isascii() and c.isupper() for c in password),
        any(c.isascii() and c.islower() for c in password),
        any(c.isascii() and c.isdigit() for c in password),
        bool(_SYMBOL_RE.search(password)),
    ]
    if sum(classes) < 3:
        return _fail(
            ValidationFailureKind.COMPLEXITY,
            "Password must contain at least 3 of the following: uppercase letter, "
            "lowercase letter, number, special character",
        )

    lowered = password.lower()
    if any(common in lowered for common in COMMON_PASSWORDS):
        return _fail(
            ValidationFailureKind.COMMON,
            "Password is too common. Please choose a stronger password",
        )

    if _has_sequential_run(password):
        return _fail(
            ValidationFailureKind.SEQUENTIAL,
            "Password contains sequential characters. Please choose a stronger password",
        )

    return VALID


def validate_name(name: str | None, field_name: str = "Name") -> ValidationResult:
    """Validate a display name: 2-100 letters, spaces, hyphens, apostrophes."""
    if not name or not name.strip():
        return _fail(ValidationFailureKind.REQUIRED, f"{field_name} is required")

    if len(name) < 2:
        return _fail(
            ValidationFailureKind.LENGTH, f"{field_name} must be at least 2 characters long"
        )

    if len(name) > 100:
        return _fail(
            ValidationFailureKind.LENGTH, f"{field_name} is too long (maximum 100 characters)"
        )

    if not _NAME_RE.fullmatch(name):
        return _fail(
            ValidationFailureKind.FORMAT,
            f"{field_name} can only contain letters, spaces, hyphens, and apostrophes",
        )

    return VALID


def validate_username(username: str | None) -> ValidationResult:
    """Validate a username: 3-50 letters, digits, dots, underscores, hyphens."""
    if not username:
        return _fail(ValidationFailureKind.REQUIRED, "Username is required")

    if not _USERNAME_RE.fullmatch(username):
        return _fail(
            ValidationFailureKind.FORMAT,
            "Username must be 3-50 characters of letters, numbers, '.', '_' or '-'",
        )

    return VALID


def is_valid_domain(domain: str) -> bool:
    """Check the simple domain grammar used for referral email restrictions."""
    return bool(_DOMAIN_RE.fullmatch(domain))
