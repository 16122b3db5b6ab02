"""
Keyword parsers for inbound German SMS text.

Each parser looks at a single topic (event response, schedule change,
registration, emergency, information request, overtime) and returns a
typed parse record with a confidence score. Parsers are independent so the
engine can re-run one of them when the conversation state already narrows
what the worker is expected to say.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Pattern, Tuple

PUNCTUATION_RE = re.compile(r"[.,!?;:]")
WHITESPACE_RE = re.compile(r"\s+")

DEFAULT_REGISTRATION_CODES = ("emsland100",)


def normalize_text(text: str) -> str:
    """Lower-case, strip punctuation and collapse whitespace"""
    cleaned = PUNCTUATION_RE.sub("", (text or "").lower())
    return WHITESPACE_RE.sub(" ", cleaned).strip()


def _compile(patterns: Iterable[str]) -> List[Pattern]:
    return [re.compile(p) for p in patterns]


def _first_match(patterns: List[Pattern], text: str) -> Optional[re.Match]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match
    return None


def _format_time(hour: str, minute: Optional[str]) -> str:
    return f"{int(hour):02d}:{minute or '00'}"


# ---------------------------------------------------------------------------
# Event responses (Ja / Nein / Rückfrage)
# ---------------------------------------------------------------------------

class EventResponseType(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    REQUEST_TIME = "request_time"
    QUESTION = "question"
    UNKNOWN = "unknown"


@dataclass
class EventResponseParse:
    type: EventResponseType
    confidence: float


ACCEPT_PATTERNS = _compile([
    r"^(ja|yes|j)$",
    r"^1$",
    r"^1️⃣$",
    r"ich kann arbeiten",
    r"kann arbeiten",
    r"bin dabei",
    r"mache ich",
    r"zusage",
    r"nehme an",
    r"\bok\b",
    r"\bokay\b",
    r"in ordnung",
    r"\bpasst\b(?! nicht)",
    r"geht klar",
])

DECLINE_PATTERNS = _compile([
    r"^(nein|no|n)$",
    r"^2$",
    r"^2️⃣$",
    r"kann nicht arbeiten",
    r"kann nicht",
    r"geht nicht",
    r"passt nicht",
    r"absage",
    r"leider nicht",
    r"schaffe nicht",
    r"keine zeit",
    r"verhindert",
])

TIME_REQUEST_PATTERNS = _compile([
    r"bis (morgen|übermorgen|\d+\.\d+)",
    r"bescheid geben",
    r"später antworten",
    r"noch überlegen",
    r"zeit zum überlegen",
    r"melde mich",
    r"sage später bescheid",
])

QUESTION_PATTERNS = _compile([
    r"^3$",
    r"^3️⃣$",
    r"rückfrage",
    r"frage",
    r"\b(wo|wann|wie|was|wer|warum)\b",
    r"mehr info",
    r"details",
    r"genauer",
    r"erklärung",
])


def parse_event_response(text: str) -> EventResponseParse:
    """
    Classify an answer to a shift invitation.

    Decline is checked before accept so negated phrases ("kann nicht arbeiten")
    never count as a yes.
    """
    clean = normalize_text(text)
    # "bis 12.5." keeps its date dot for the time-request pattern
    clean_dates = WHITESPACE_RE.sub(" ", re.sub(r"[,!?;:]", "", (text or "").lower())).strip()

    if _first_match(DECLINE_PATTERNS, clean):
        return EventResponseParse(EventResponseType.DECLINE, 0.9)
    if _first_match(ACCEPT_PATTERNS, clean):
        return EventResponseParse(EventResponseType.ACCEPT, 0.9)
    if _first_match(TIME_REQUEST_PATTERNS, clean_dates) or _first_match(TIME_REQUEST_PATTERNS, clean):
        return EventResponseParse(EventResponseType.REQUEST_TIME, 0.8)
    if _first_match(QUESTION_PATTERNS, clean) or "?" in (text or ""):
        return EventResponseParse(EventResponseType.QUESTION, 0.8)

    # Weaker substring fallback
    if "nein" in clean:
        return EventResponseParse(EventResponseType.DECLINE, 0.6)
    if "ja" in clean:
        return EventResponseParse(EventResponseType.ACCEPT, 0.6)

    return EventResponseParse(EventResponseType.UNKNOWN, 0.0)


# ---------------------------------------------------------------------------
# Schedule modifications
# ---------------------------------------------------------------------------

class ScheduleModificationType(str, Enum):
    START_TIME = "start_time"
    END_TIME = "end_time"
    DURATION = "duration"
    GENERAL = "general"


@dataclass
class ScheduleModificationParse:
    type: ScheduleModificationType
    confidence: float
    requested_time: Optional[str] = None
    requested_hours: Optional[int] = None
    reason: Optional[str] = None


TIME = r"(\d{1,2}):?(\d{2})?\b"

START_TIME_PATTERNS = _compile([
    rf"kann ich erst um {TIME} (uhr )?anfangen",
    rf"anfangen um {TIME}",
    rf"start um {TIME}",
    rf"beginnen um {TIME}",
    r"später anfangen",
    r"später kommen",
    r"verspätung",
])

END_TIME_PATTERNS = _compile([
    rf"muss um {TIME} (uhr )?weg",
    rf"kann nur bis {TIME}",
    rf"schluss um {TIME}",
    r"früher gehen",
    r"früher schluss",
    r"eher weg",
])

DURATION_PATTERNS = _compile([
    r"kann nur (\d+) stunden?",
    r"nur (\d+) ?h\b",
    r"weniger stunden",
    r"kürzere zeit",
    r"nicht so lange",
])

GENERAL_SCHEDULE_PATTERNS = _compile([
    r"zeit ändern",
    r"andere zeit",
    r"zeitproblem",
    r"terminproblem",
    r"geht zeitlich nicht",
])


def _timed_match(patterns: List[Pattern], text: str) -> Tuple[bool, Optional[str]]:
    match = _first_match(patterns, text)
    if not match:
        return False, None
    groups = match.groups()
    if groups and groups[0] and groups[0].isdigit():
        return True, _format_time(groups[0], groups[1] if len(groups) > 1 else None)
    return True, None


def parse_schedule_modification(text: str) -> ScheduleModificationParse:
    """Detect a requested change of start, end or length of a shift"""
    clean = normalize_text(text)

    matched, requested = _timed_match(START_TIME_PATTERNS, clean)
    if matched:
        return ScheduleModificationParse(ScheduleModificationType.START_TIME, 0.8,
                                         requested_time=requested, reason=text)

    matched, requested = _timed_match(END_TIME_PATTERNS, clean)
    if matched:
        return ScheduleModificationParse(ScheduleModificationType.END_TIME, 0.8,
                                         requested_time=requested, reason=text)

    match = _first_match(DURATION_PATTERNS, clean)
    if match:
        hours = int(match.group(1)) if match.groups() and match.group(1) else None
        return ScheduleModificationParse(ScheduleModificationType.DURATION, 0.7,
                                         requested_hours=hours, reason=text)

    if _first_match(GENERAL_SCHEDULE_PATTERNS, clean):
        return ScheduleModificationParse(ScheduleModificationType.GENERAL, 0.6, reason=text)

    return ScheduleModificationParse(ScheduleModificationType.GENERAL, 0.3, reason=text)


# ---------------------------------------------------------------------------
# Registration (code or name)
# ---------------------------------------------------------------------------

class RegistrationResponseType(str, Enum):
    CODE = "code"
    NAME = "name"
    INVALID = "invalid"


@dataclass
class RegistrationParse:
    type: RegistrationResponseType
    confidence: float
    value: Optional[str] = None


STRICT_NAME_RE = re.compile(r"^[A-ZÄÖÜ][a-zäöüß]+(\s+[A-ZÄÖÜ][a-zäöüß]+)+$")
CAPITALIZED_NAME_RE = re.compile(r"^[A-ZÄÖÜ][A-Za-zÄÖÜäöüß\-']+(\s+[A-ZÄÖÜ][A-Za-zÄÖÜäöüß\-']+)+$")
LENIENT_NAME_RE = re.compile(r"^[a-zA-ZäöüÄÖÜß\s\-']{2,50}$")


def parse_registration_response(text: str,
                                codes: Iterable[str] = DEFAULT_REGISTRATION_CODES,
                                lenient: bool = False) -> RegistrationParse:
    """
    Recognize a registration code or a full name.

    Args:
        text: Raw message text
        codes: Known registration codes (compared case-insensitively)
        lenient: Accept any two-word letter string as a name. Used once the
            conversation is already waiting for the worker's name.

    Returns:
        RegistrationParse with type code, name or invalid
    """
    trimmed = WHITESPACE_RE.sub(" ", (text or "").strip())

    lowered = trimmed.lower()
    for code in codes:
        if lowered == code.lower():
            return RegistrationParse(RegistrationResponseType.CODE, 1.0, code.lower())

    if len(trimmed) <= 100:
        if STRICT_NAME_RE.match(trimmed):
            return RegistrationParse(RegistrationResponseType.NAME, 0.9, trimmed)
        if CAPITALIZED_NAME_RE.match(trimmed):
            return RegistrationParse(RegistrationResponseType.NAME, 0.7, trimmed)
        if lenient and LENIENT_NAME_RE.match(trimmed) and " " in trimmed:
            return RegistrationParse(RegistrationResponseType.NAME, 0.7, trimmed)

    return RegistrationParse(RegistrationResponseType.INVALID, 0.0)


# ---------------------------------------------------------------------------
# Emergencies
# ---------------------------------------------------------------------------

class EmergencyType(str, Enum):
    LATE = "late"
    SICK = "sick"
    INJURY = "injury"
    CANCELLATION = "cancellation"
    UNKNOWN = "unknown"


@dataclass
class EmergencyParse:
    type: EmergencyType
    confidence: float
    delay_minutes: Optional[int] = None
    reason: Optional[str] = None


LATE_PATTERNS = _compile([
    r"bin im stau",
    r"komme (\d+) minuten? später",
    r"komme ca ?(\d+) min(uten)? später",
    r"(\d+) min(uten)? verspätung",
    r"verspätung",
    r"später da",
    r"schaffe es nicht pünktlich",
    r"komme zu spät",
])

SICK_PATTERNS = _compile([
    r"bin krank",
    r"krank geworden",
    r"erkältet",
    r"fieber",
    r"grippe",
    r"magen.?darm",
    r"übelkeit",
    r"attest",
    r"\barzt",
    r"krankschreibung",
])

INJURY_PATTERNS = _compile([
    r"verletzt",
    r"unfall",
    r"\bsturz\b",
    r"schmerzen",
    r"kann nicht laufen",
    r"\bfuß\b",
    r"\bbein\b",
    r"\barm\b",
    r"\brücken\b",
])

CANCELLATION_PATTERNS = _compile([
    r"muss absagen",
    r"kann nicht kommen",
    r"schaffe es nicht",
    r"kurzfristig absagen",
    r"abmelden",
    r"stornieren",
    r"nicht möglich",
])


def parse_emergency_message(text: str) -> EmergencyParse:
    clean = normalize_text(text)

    match = _first_match(LATE_PATTERNS, clean)
    if match:
        delay = None
        if match.groups() and match.group(1) and match.group(1).isdigit():
            delay = int(match.group(1))
        return EmergencyParse(EmergencyType.LATE, 0.9, delay_minutes=delay, reason=text)

    if _first_match(SICK_PATTERNS, clean):
        return EmergencyParse(EmergencyType.SICK, 0.9, reason=text)

    if _first_match(INJURY_PATTERNS, clean):
        return EmergencyParse(EmergencyType.INJURY, 0.8, reason=text)

    if _first_match(CANCELLATION_PATTERNS, clean):
        return EmergencyParse(EmergencyType.CANCELLATION, 0.8, reason=text)

    return EmergencyParse(EmergencyType.UNKNOWN, 0.0, reason=text)


# ---------------------------------------------------------------------------
# Information requests
# ---------------------------------------------------------------------------

class InformationRequestType(str, Enum):
    LOCATION = "location"
    EQUIPMENT = "equipment"
    CONTACT = "contact"
    GENERAL = "general"
    UNKNOWN = "unknown"


@dataclass
class InformationParse:
    type: InformationRequestType
    confidence: float


LOCATION_PATTERNS = _compile([
    r"\bwo\b",
    r"treffpunkt",
    r"adresse",
    r"\bort\b",
    r"location",
    r"standort",
    r"wie komme ich",
    r"wegbeschreibung",
    r"anfahrt",
])

EQUIPMENT_PATTERNS = _compile([
    r"was.*mitbringen",
    r"ausrüstung",
    r"equipment",
    r"kleidung",
    r"anziehen",
    r"brauche ich",
    r"material",
    r"werkzeug",
])

CONTACT_PATTERNS = _compile([
    r"ansprechpartner",
    r"wer.*vor ort",
    r"\bchef",
    r"leitung",
    r"kontakt",
    r"telefon",
    r"nummer",
    r"erreichen",
])


def parse_information_request(text: str) -> InformationParse:
    clean = normalize_text(text)

    if _first_match(LOCATION_PATTERNS, clean):
        return InformationParse(InformationRequestType.LOCATION, 0.8)
    if _first_match(EQUIPMENT_PATTERNS, clean):
        return InformationParse(InformationRequestType.EQUIPMENT, 0.8)
    if _first_match(CONTACT_PATTERNS, clean):
        return InformationParse(InformationRequestType.CONTACT, 0.8)

    if "?" in (text or "") or any(word in clean for word in ("frage", "info", "wissen")):
        return InformationParse(InformationRequestType.GENERAL, 0.6)

    return InformationParse(InformationRequestType.UNKNOWN, 0.0)


# ---------------------------------------------------------------------------
# Overtime
# ---------------------------------------------------------------------------

class OvertimeResponseType(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    UNKNOWN = "unknown"


@dataclass
class OvertimeParse:
    type: OvertimeResponseType
    confidence: float


def parse_overtime_response(text: str) -> OvertimeParse:
    """Overtime answers share the event-response vocabulary"""
    event = parse_event_response(text)
    if event.type == EventResponseType.ACCEPT:
        return OvertimeParse(OvertimeResponseType.ACCEPT, event.confidence)
    if event.type == EventResponseType.DECLINE:
        return OvertimeParse(OvertimeResponseType.DECLINE, event.confidence)
    return OvertimeParse(OvertimeResponseType.UNKNOWN, 0.0)
