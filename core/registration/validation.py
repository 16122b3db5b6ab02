"""Worker name and phone number validation"""

import re
from dataclasses import dataclass
from typing import Optional

NAME_CHARS_RE = re.compile(r"^[a-zA-ZäöüÄÖÜß\s\-'.]+$")
BLOCKED_PREFIXES = [
    re.compile(r"^\+49900"),
    re.compile(r"^\+49137"),
    re.compile(r"^\+49180[1-9]"),
]
E164_RE = re.compile(r"^\+\d{10,15}$")


@dataclass
class NameValidation:
    is_valid: bool
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    error: Optional[str] = None

    @property
    def full_name(self) -> Optional[str]:
        if not self.is_valid:
            return None
        return f"{self.first_name} {self.last_name}"


@dataclass
class PhoneValidation:
    is_valid: bool
    normalized: Optional[str] = None
    error: Optional[str] = None


def _title_case(word: str) -> str:
    # Keep hyphenated parts capitalized: "anna-lena" -> "Anna-Lena"
    return "-".join(part[:1].upper() + part[1:].lower() for part in word.split("-"))


def validate_worker_name(name: str) -> NameValidation:
    """
    Validate and normalize a worker's full name.

    The last word becomes the last name; everything before it the first name.
    """
    trimmed = re.sub(r"\s+", " ", (name or "").strip())

    if len(trimmed) < 2:
        return NameValidation(False, error="Name muss mindestens 2 Zeichen lang sein")
    if len(trimmed) > 100:
        return NameValidation(False, error="Name darf maximal 100 Zeichen lang sein")
    if not NAME_CHARS_RE.match(trimmed):
        return NameValidation(False, error="Name enthält ungültige Zeichen")

    parts = [_title_case(part) for part in trimmed.split(" ") if part]
    if len(parts) < 2:
        return NameValidation(False, error="Bitte Vor- und Nachname eingeben")

    return NameValidation(True, first_name=" ".join(parts[:-1]), last_name=parts[-1])


def normalize_phone_number(phone: str, country_code: str = "49") -> str:
    """
    Normalize a phone number to E.164 format

    Handles formats:
    - 0151 12345678 → +4915112345678
    - 49151 12345678 → +4915112345678
    - +49 151 12345678 → +4915112345678
    - 15112345678 → +4915112345678
    """
    digits_only = re.sub(r"[^\d+]", "", phone or "")
    if digits_only.startswith("+"):
        return "+" + digits_only[1:].replace("+", "")
    if digits_only.startswith("00"):
        return "+" + digits_only[2:]
    if digits_only.startswith("0"):
        return f"+{country_code}{digits_only[1:]}"
    if digits_only.startswith(country_code):
        return f"+{digits_only}"
    return f"+{country_code}{digits_only}"


def validate_phone_number(phone: str, country_code: str = "49") -> PhoneValidation:
    normalized = normalize_phone_number(phone, country_code)
    if not E164_RE.match(normalized):
        return PhoneValidation(False, error="Ungültiges Telefonnummer-Format. Bitte deutsche Mobilfunknummer verwenden.")
    if any(p.match(normalized) for p in BLOCKED_PREFIXES):
        return PhoneValidation(False, normalized,
                               "Diese Telefonnummer kann nicht für die Registrierung verwendet werden.")
    return PhoneValidation(True, normalized)
