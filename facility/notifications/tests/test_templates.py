"""Tests for message template loading and rendering."""

import pytest
from facility.notifications.templates import get_message, load_templates, render_message


class TestLoadTemplates:
    def test_loads_yaml_file(self):
        templates = load_templates()
        assert isinstance(templates, dict)
        assert {"lesson_reminder", "contract_reminder", "booking_confirmation"} <= set(
            templates
        )

    def test_every_message_has_sms_body(self):
        for message_type, parts in load_templates().items():
            assert "sms" in parts, message_type


class TestRenderMessage:
    def test_renders_simple_variable(self):
        assert render_message("Hello {name}!", {"name": "Jane"}) == "Hello Jane!"

    def test_missing_variable_raises(self):
        with pytest.raises(KeyError):
            render_message("Hello {name}!", {})


class TestGetMessage:
    def test_renders_optional_fragment(self):
        assert (
            get_message("lesson_reminder", "instructor", {"instructor": "Casey"})
            == " Instructor: Casey."
        )

    def test_unknown_part_raises(self):
        with pytest.raises(KeyError):
            get_message("booking_confirmation", "email_subject", {})

    def test_unknown_message_type_names_it(self):
        with pytest.raises(KeyError, match="waiver_reminder.sms"):
            get_message("waiver_reminder", "sms", {})
