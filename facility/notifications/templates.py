"""SMS wording, kept in messages.yaml and rendered with str.format."""

from pathlib import Path

import yaml

MESSAGES_PATH = Path(__file__).parent / "messages.yaml"

_templates: dict | None = None


def load_templates() -> dict:
    """{message_type: {part: template}}, read once per process."""
    global _templates
    if _templates is None:
        with open(MESSAGES_PATH) as f:
            _templates = yaml.safe_load(f)
    return _templates


def render_message(template: str, context: dict) -> str:
    """Fill {placeholders}; a missing variable raises KeyError."""
    return template.format(**context)


def get_message(message_type: str, part: str, context: dict) -> str:
    """
    Render one part of a message.

    Args:
        message_type: e.g. "lesson_reminder", "booking_confirmation"
        part: "sms" for the body, or an optional fragment like "instructor"
        context: Placeholder values

    Raises:
        KeyError: Unknown message type or part, or a missing placeholder
    """
    parts = load_templates().get(message_type)
    if parts is None or part not in parts:
        raise KeyError(f"No template {message_type}.{part} in {MESSAGES_PATH.name}")
    return render_message(parts[part], context)
