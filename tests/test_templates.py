"""Tests for German reply templates."""

from datetime import datetime

import pytest

from core.conversation.templates import (
    MAX_MESSAGE_LENGTH,
    MessageTemplates,
    format_date_long,
    format_date_short,
    format_deadline,
    truncate,
    validate_message_length,
)


@pytest.fixture
def templates():
    return MessageTemplates()


class TestFormatting:
    """German date and deadline formatting."""

    def test_short_date(self):
        """Short dates drop leading zeros."""
        assert format_date_short("2024-06-08") == "8.6.2024"

    def test_long_date(self):
        """Long dates spell out weekday and month."""
        assert format_date_long("2024-06-08") == "Samstag, 8. Juni 2024"

    def test_unparseable_date_is_returned_as_is(self):
        """Garbage dates pass through untouched."""
        assert format_date_short("bald") == "bald"

    def test_deadline(self):
        """Deadlines carry the clock time."""
        assert format_deadline(datetime(2024, 6, 4, 18, 0)) == "Dienstag, 4. Juni 2024 um 18:00 Uhr"


class TestMessageLength:
    """Segment counting and truncation."""

    def test_single_segment(self):
        """Up to 160 characters is one segment without warning."""
        check = validate_message_length("x" * 160)
        assert check.segments == 1
        assert check.is_valid
        assert check.warning is None

    def test_multiple_segments_warn(self):
        """Longer texts warn about segmentation."""
        check = validate_message_length("x" * 161)
        assert check.segments == 2
        assert check.warning

    def test_too_many_segments(self):
        """More than ten segments is invalid."""
        assert not validate_message_length("x" * (MAX_MESSAGE_LENGTH + 1)).is_valid

    def test_truncate_short_text_unchanged(self):
        """Text within the limit is untouched."""
        assert truncate("Hallo", 10) == "Hallo"

    def test_truncate_adds_ellipsis(self):
        """Cut text ends with an ellipsis and respects the limit."""
        result = truncate("x" * 20, 10)
        assert result == "xxxxxxx..."
        assert len(result) == 10

    @pytest.mark.parametrize("limit", [0, 1, 2])
    def test_truncate_below_ellipsis_width(self, limit):
        """Limits too small for an ellipsis still hold."""
        result = truncate("hello world", limit)
        assert result == "hello world"[:limit]
        assert len(result) <= limit


class TestTemplates:
    """Rendered reply texts."""

    def test_notification(self, templates, worker, shift):
        """Invitation lists the shift details and answer options."""
        text = templates.shift_notification(worker, shift)
        assert "Hallo Max!" in text
        assert "Stadtfest Lingen" in text
        assert "Samstag, 8. Juni 2024" in text
        assert "09:00 - 17:00" in text
        assert "€14.50" in text
        assert "1️⃣ JA" in text

    def test_acceptance(self, templates, worker, shift):
        """Acceptance names the worker, shift and location."""
        text = templates.shift_acceptance(worker, shift)
        assert "Super, Max!" in text
        assert "\"Stadtfest Lingen\" am 8.6.2024" in text
        assert "Marktplatz Lingen" in text

    def test_acceptance_default_location(self, templates, worker, shift):
        """Shifts without a location fall back to the default meeting point."""
        text = templates.shift_acceptance(worker, shift.model_copy(update={"location": None}))
        assert "die Emsland Arena" in text

    def test_registration_prompt_quotes_code(self, templates):
        """The prompt quotes the code as the worker sent it."""
        assert "\"Emsland100\"" in templates.registration_prompt("Emsland100")

    def test_late_without_delay(self, templates, worker):
        """A late notice without minutes says ca. 15."""
        assert "ca. 15 Minuten" in templates.emergency(worker, "late")

    def test_sick(self, templates, worker):
        """Sick replies wish a quick recovery."""
        assert templates.emergency(worker, "sick").startswith("Gute Besserung, Max!")

    def test_information_contact(self, templates):
        """Contact answers name the on-site contact."""
        assert "Frau Müller" in templates.information("contact")

    def test_overtime_request(self, templates, worker, shift):
        """Overtime requests show hours and the shift rate."""
        text = templates.overtime_request(worker, shift, 2)
        assert "ca. 2 Stunden" in text
        assert "€14.50" in text

    def test_custom_coordinator(self, worker):
        """The coordinator name is configurable."""
        templates = MessageTemplates(coordinator_name="Frau Lange")
        assert "Frau Lange" in templates.registration_confirmation("Anna Schmidt")

    @pytest.mark.parametrize("kind", ["invalid_response", "registration_failed", "system_error",
                                      "invalid_code", "something_else"])
    def test_errors_fit_in_one_message(self, templates, kind):
        """Error replies are never empty and stay within the message limit."""
        text = templates.error(kind)
        assert text
        assert validate_message_length(text).is_valid
