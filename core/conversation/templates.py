"""
German SMS reply templates.

Every function takes typed domain data (workers, shifts, parsed requests)
and returns the literal reply text. Nothing here reads the conversation
context directly.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from models.schemas import Shift, Worker

SMS_SEGMENT_LENGTH = 160
MAX_SMS_SEGMENTS = 10
MAX_MESSAGE_LENGTH = SMS_SEGMENT_LENGTH * MAX_SMS_SEGMENTS

WEEKDAYS_DE = ["Montag", "Dienstag", "Mittwoch", "Donnerstag", "Freitag", "Samstag", "Sonntag"]
MONTHS_DE = ["Januar", "Februar", "März", "April", "Mai", "Juni", "Juli",
             "August", "September", "Oktober", "November", "Dezember"]


def _to_date(value: Union[str, date, datetime]) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def format_date_short(value: Union[str, date, datetime]) -> str:
    """15.3.2025"""
    parsed = _to_date(value)
    if parsed is None:
        return str(value)
    return f"{parsed.day}.{parsed.month}.{parsed.year}"


def format_date_long(value: Union[str, date, datetime]) -> str:
    """Samstag, 15. März 2025"""
    parsed = _to_date(value)
    if parsed is None:
        return str(value)
    return f"{WEEKDAYS_DE[parsed.weekday()]}, {parsed.day}. {MONTHS_DE[parsed.month - 1]} {parsed.year}"


def format_deadline(deadline: datetime) -> str:
    """Deadline text, e.g. 'Sonntag, 16. März 2025 um 18:00 Uhr'"""
    return f"{format_date_long(deadline)} um {deadline.strftime('%H:%M')} Uhr"


def format_rate(rate: float) -> str:
    return f"€{rate:.2f}"


@dataclass
class MessageLengthCheck:
    is_valid: bool
    length: int
    segments: int
    warning: Optional[str] = None


def validate_message_length(text: str) -> MessageLengthCheck:
    """Check SMS segmentation on 160-character boundaries"""
    length = len(text)
    segments = math.ceil(length / SMS_SEGMENT_LENGTH)
    return MessageLengthCheck(
        is_valid=segments <= MAX_SMS_SEGMENTS,
        length=length,
        segments=segments,
        warning=f"Message will be sent as {segments} SMS segments" if segments > 1 else None,
    )


def truncate(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Hard-truncate, appending an ellipsis only when text was cut"""
    if len(text) <= max_length:
        return text
    if max_length < 3:
        return text[:max(0, max_length)]
    return text[:max_length - 3] + "..."


class MessageTemplates:
    """
    Renders all outbound texts.

    Args:
        coordinator_name: Person workers are handed off to ("Herrn Schepergerdes")
        onsite_contact_name: Contact named in on-site information replies
        default_meeting_point: Location used when a shift has none
        registration_code: Code quoted in registration texts
    """

    def __init__(self, coordinator_name: str = "Herrn Schepergerdes",
                 onsite_contact_name: str = "Frau Müller",
                 default_meeting_point: str = "die Emsland Arena",
                 registration_code: str = "Emsland100"):
        self.coordinator_name = coordinator_name
        self.onsite_contact_name = onsite_contact_name
        self.default_meeting_point = default_meeting_point
        self.registration_code = registration_code

    # Shift invitation and registration

    def shift_notification(self, worker: Worker, shift: Shift) -> str:
        end_time = f" - {shift.end_time}" if shift.end_time else ""
        return (
            f"Hallo {worker.first_name}! 👋\n\n"
            f"🎯 Neue Arbeitsanfrage für dich:\n\n"
            f"📅 Event: {shift.title}\n"
            f"📍 Datum: {format_date_long(shift.date)}\n"
            f"⏰ Zeit: {shift.start_time}{end_time}\n"
            f"🏢 Ort: {shift.location or self.default_meeting_point}\n"
            f"💰 Stundenlohn: {format_rate(shift.hourly_rate)}\n\n"
            f"Kannst du arbeiten? Bitte antworte:\n"
            f"1️⃣ JA - Ich kann arbeiten\n"
            f"2️⃣ NEIN - Ich kann nicht\n"
            f"3️⃣ RÜCKFRAGE - Ich habe eine Frage\n\n"
            f"Vielen Dank! 🙏"
        )

    def registration_prompt(self, code: Optional[str] = None) -> str:
        return (
            f"Hallo! 👋\n\n"
            f"Willkommen bei unserem Event-Team!\n\n"
            f"Du hast den Code \"{code or self.registration_code}\" gesendet. Um deine Registrierung "
            f"abzuschließen, sende uns bitte deinen vollständigen Namen.\n\n"
            f"Beispiel: \"Max Mustermann\"\n\n"
            f"Vielen Dank! 🙏"
        )

    def already_registered(self, worker: Worker) -> str:
        return (
            f"Hallo {worker.first_name}! 👋\n\n"
            f"Diese Telefonnummer ist bereits registriert für {worker.full_name}.\n\n"
            f"Du bekommst unsere Event-Anfragen automatisch per SMS.\n\n"
            f"Bei Fragen wende dich an {self.coordinator_name}. 👍"
        )

    def registration_name_retry(self, problem: str) -> str:
        return (
            f"❓ {problem}\n\n"
            f"Bitte sende uns deinen vollständigen Namen (Vor- und Nachname).\n\n"
            f"Beispiel: \"Max Mustermann\""
        )

    def registration_confirmation(self, worker_name: str) -> str:
        return (
            f"Hallo {worker_name}! 🎉\n\n"
            f"Herzlich willkommen im Team! Deine Registrierung war erfolgreich.\n\n"
            f"Du erhältst ab sofort SMS-Benachrichtigungen über verfügbare Events.\n\n"
            f"Bei Fragen wende dich an {self.coordinator_name}.\n\n"
            f"Wir freuen uns auf die Zusammenarbeit! 👍"
        )

    # Shift responses

    def shift_acceptance(self, worker: Worker, shift: Shift) -> str:
        return (
            f"Super, {worker.first_name}! ✅\n\n"
            f"Danke für deine Zusage für \"{shift.title}\" am {format_date_short(shift.date)}.\n\n"
            f"Wir freuen uns auf dich!\n\n"
            f"📍 Treffpunkt: {shift.location or self.default_meeting_point}\n"
            f"⏰ Zeit: {shift.start_time}\n\n"
            f"Bei Fragen melde dich bei {self.coordinator_name}. 👍"
        )

    def shift_decline(self, worker: Worker, shift: Shift) -> str:
        return (
            f"Schade, {worker.first_name}! ❌\n\n"
            f"Danke für deine Rückmeldung zu \"{shift.title}\".\n\n"
            f"Kein Problem - beim nächsten Mal klappt es bestimmt wieder!\n\n"
            f"Vielen Dank für deine ehrliche Antwort. 🙏"
        )

    def time_request(self, worker: Worker, deadline: datetime) -> str:
        return (
            f"Kein Problem, {worker.first_name}! ⏰\n\n"
            f"Gib uns bitte bis {format_deadline(deadline)} Bescheid, ob du Zeit hast.\n\n"
            f"Antworte dann einfach mit:\n"
            f"1️⃣ JA - Ich kann arbeiten\n"
            f"2️⃣ NEIN - Ich kann nicht\n\n"
            f"Vielen Dank! 🙏"
        )

    # Schedule modifications

    def schedule_modification(self, worker: Worker, shift: Shift, kind: str,
                              requested_time: Optional[str] = None) -> str:
        name = worker.first_name
        shift_date = format_date_short(shift.date)
        if kind == "start_time" and requested_time:
            return (
                f"Alles klar, {name}! ⏰\n\n"
                f"Wir tragen deinen geänderten Arbeitsbeginn um {requested_time} ein.\n\n"
                f"Event: {shift.title}\n"
                f"Datum: {shift_date}\n"
                f"Neue Startzeit: {requested_time}\n\n"
                f"Vielen Dank für die Info! 👍"
            )
        if kind == "end_time" and requested_time:
            return (
                f"Verstanden, {name}! ⏰\n\n"
                f"Wir planen deinen früheren Feierabend um {requested_time} mit ein.\n\n"
                f"⚠️ Wichtig: Melde dich bitte am {shift_date} nochmal bei {self.coordinator_name} "
                f"um dich persönlich abzumelden.\n\n"
                f"Vielen Dank! 👍"
            )
        if kind in ("start_time", "end_time", "duration"):
            return (
                f"Alles klar, {name}! ⏰\n\n"
                f"Wir haben deine geänderte Arbeitszeit notiert.\n\n"
                f"⚠️ Wichtig: Melde dich bitte am {shift_date} bei {self.coordinator_name} "
                f"um die Details zu besprechen.\n\n"
                f"Vielen Dank für die Info! 👍"
            )
        return (
            f"Danke für deine Nachricht, {name}! 📝\n\n"
            f"Wir haben deine Änderungswünsche notiert und werden sie berücksichtigen.\n\n"
            f"Bei weiteren Fragen wende dich an {self.coordinator_name}.\n\n"
            f"Vielen Dank! 👍"
        )

    # Emergencies

    def emergency(self, worker: Worker, kind: str, delay_minutes: Optional[int] = None) -> str:
        name = worker.first_name
        if kind == "late":
            delay = str(delay_minutes) if delay_minutes is not None else "ca. 15"
            return (
                f"Danke für die Info, {name}! 🚗\n\n"
                f"Wir notieren deine Verspätung von {delay} Minuten.\n\n"
                f"Komm einfach, sobald du da bist. Wir regeln das vor Ort.\n\n"
                f"Gute Fahrt! 👍"
            )
        if kind == "sick":
            return (
                f"Gute Besserung, {name}! 🤒\n\n"
                f"Wir haben dich jetzt ausgetragen. Kümmere dich um deine Gesundheit.\n\n"
                f"Falls du ein Attest brauchst, sende es später an {self.coordinator_name}.\n\n"
                f"Werde schnell wieder gesund! 🙏"
            )
        if kind == "injury":
            return (
                f"Das tut mir leid, {name}! 🩹\n\n"
                f"Gute Besserung! Wir kümmern uns um Ersatz.\n\n"
                f"Falls nötig, wende dich wegen des Arbeitsunfalls an {self.coordinator_name}.\n\n"
                f"Werde schnell wieder gesund! 🙏"
            )
        if kind == "cancellation":
            return (
                f"Danke für deine Nachricht, {name}! 📝\n\n"
                f"Wir haben dich ausgetragen. Schade, dass es nicht geklappt hat.\n\n"
                f"Beim nächsten Event bist du hoffentlich wieder dabei!\n\n"
                f"Vielen Dank für die rechtzeitige Absage. 🙏"
            )
        return (
            f"Danke für deine Nachricht, {name}! 📝\n\n"
            f"Wir haben deine Situation zur Kenntnis genommen und werden entsprechend reagieren.\n\n"
            f"Bei weiteren Fragen wende dich an {self.coordinator_name}.\n\n"
            f"Alles Gute! 🙏"
        )

    # Information requests

    def information(self, kind: str, location: Optional[str] = None) -> str:
        if kind == "location":
            return (
                f"📍 Treffpunkt-Info:\n\n"
                f"Der Eventort ist \"{location or self.default_meeting_point}\".\n\n"
                f"Weitere Details zum genauen Treffpunkt erhältst du vor Ort oder von {self.coordinator_name}.\n\n"
                f"Bei Fragen: Einfach nochmal schreiben! 👍"
            )
        if kind == "equipment":
            return (
                f"🎒 Ausrüstungs-Info:\n\n"
                f"Für Fragen zur Ausrüstung wende dich bitte direkt an {self.coordinator_name}.\n\n"
                f"Dort erfährst du genau, was du mitbringen musst.\n\n"
                f"Vielen Dank! 👍"
            )
        if kind == "contact":
            return (
                f"👥 Ansprechpartner vor Ort:\n\n"
                f"Dein Ansprechpartner ist {self.onsite_contact_name}.\n\n"
                f"Sie wird dich vor Ort einweisen und bei Fragen helfen.\n\n"
                f"Falls du sie nicht findest, frag einfach andere Teammitglieder.\n\n"
                f"Viel Erfolg! 👍"
            )
        if kind == "general":
            return (
                f"ℹ️ Allgemeine Info:\n\n"
                f"Für weitere Fragen und Details wende dich bitte an {self.coordinator_name}.\n\n"
                f"Du kannst auch hier per SMS nachfragen - wir helfen gerne weiter!\n\n"
                f"Vielen Dank! 👍"
            )
        return (
            f"❓ Deine Frage:\n\n"
            f"Entschuldigung, ich habe deine Frage nicht ganz verstanden.\n\n"
            f"Wende dich bitte direkt an {self.coordinator_name} oder stelle deine Frage nochmal anders.\n\n"
            f"Wir helfen gerne weiter! 👍"
        )

    # Overtime

    def overtime_request(self, worker: Worker, shift: Shift, additional_hours: float,
                         hourly_rate: Optional[float] = None) -> str:
        rate = hourly_rate if hourly_rate is not None else shift.hourly_rate
        hours = f"{additional_hours:g}"
        return (
            f"Hallo {worker.first_name}! ⏰\n\n"
            f"Könntest du heute bei \"{shift.title}\" länger bleiben?\n\n"
            f"Zusätzliche Zeit: ca. {hours} Stunden\n"
            f"Stundenlohn: {format_rate(rate)}\n\n"
            f"Bitte antworte mit:\n"
            f"1️⃣ JA - Ich kann Überstunden machen\n"
            f"2️⃣ NEIN - Heute nicht möglich\n\n"
            f"Vielen Dank! 🙏"
        )

    def overtime_acceptance(self, worker: Worker) -> str:
        return (
            f"Super, {worker.first_name}! ⏰\n\n"
            f"Danke für dein Angebot! Wir halten dich auf dem Laufenden und melden uns, "
            f"wenn wir dich brauchen.\n\n"
            f"Du hilfst uns sehr damit! 👍"
        )

    def overtime_decline(self, worker: Worker) -> str:
        return (
            f"Verstanden, {worker.first_name}! ⏰\n\n"
            f"Danke für die Rückmeldung. Kein Problem - heute geht es nicht.\n\n"
            f"Beim nächsten Mal vielleicht wieder! 👍"
        )

    # Contact updates

    def contact_update(self, worker: Worker, kind: str) -> str:
        name = worker.first_name
        if kind == "phone_number":
            return (
                f"Danke, {name}! 📱\n\n"
                f"Deine neue Telefonnummer wurde aktualisiert.\n\n"
                f"Du erhältst weiterhin alle SMS-Benachrichtigungen auf dieser Nummer.\n\n"
                f"Vielen Dank für die Info! 👍"
            )
        if kind == "availability":
            return (
                f"Danke, {name}! 📅\n\n"
                f"Deine neuen Verfügbarkeiten wurden gespeichert.\n\n"
                f"Wir berücksichtigen sie bei zukünftigen Event-Anfragen.\n\n"
                f"Vielen Dank! 👍"
            )
        return (
            f"Danke, {name}! 📝\n\n"
            f"Deine Kontaktdaten wurden aktualisiert.\n\n"
            f"Bei weiteren Änderungen melde dich einfach wieder.\n\n"
            f"Vielen Dank! 👍"
        )

    # Errors

    def error(self, kind: str) -> str:
        if kind == "invalid_response":
            return (
                "❓ Entschuldigung!\n\n"
                "Ich habe deine Antwort nicht verstanden.\n\n"
                "Bitte antworte mit:\n"
                "1️⃣ JA\n"
                "2️⃣ NEIN\n"
                "3️⃣ RÜCKFRAGE\n\n"
                "Oder schreibe deine Frage ausführlicher. Vielen Dank! 🙏"
            )
        if kind == "registration_failed":
            return (
                f"❌ Registrierung fehlgeschlagen!\n\n"
                f"Es gab ein Problem bei deiner Registrierung.\n\n"
                f"Bitte versuche es nochmal oder wende dich an {self.coordinator_name}.\n\n"
                f"Entschuldigung für die Unannehmlichkeiten! 🙏"
            )
        if kind == "system_error":
            return (
                f"⚠️ Technisches Problem!\n\n"
                f"Es gab einen temporären Fehler. Bitte versuche es in ein paar Minuten nochmal.\n\n"
                f"Bei anhaltenden Problemen wende dich an {self.coordinator_name}.\n\n"
                f"Entschuldigung! 🙏"
            )
        if kind == "invalid_code":
            return (
                f"❌ Ungültiger Code!\n\n"
                f"Der Code \"{self.registration_code}\" ist erforderlich für die Registrierung.\n\n"
                f"Bitte sende: \"{self.registration_code}\"\n\n"
                f"Vielen Dank! 🙏"
            )
        return (
            f"❓ Unbekannter Fehler!\n\n"
            f"Es gab ein Problem. Bitte wende dich an {self.coordinator_name}.\n\n"
            f"Entschuldigung für die Unannehmlichkeiten! 🙏"
        )
