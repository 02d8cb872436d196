"""Reserved chat commands and interrupt tokens."""

from __future__ import annotations

from enum import Enum


class InterruptKind(str, Enum):
    EXIT = "exit"
    EDIT = "edit"
    RESTART = "restart"


# Accepted with or without the "!" prefix while a reply is awaited.
_INTERRUPT_ALIASES: dict[str, InterruptKind] = {
    "exit": InterruptKind.EXIT,
    "!exit": InterruptKind.EXIT,
    "edit": InterruptKind.EDIT,
    "!edit": InterruptKind.EDIT,
    "restart": InterruptKind.RESTART,
    "!restart": InterruptKind.RESTART,
    "!start": InterruptKind.RESTART,
}
_START_ALIASES = {"!start", "!restart"}
_HELP_ALIASES = {"!help", "!commands"}
_PING_ALIASES = {"!ping"}
_RESUME_ALIASES = {"!resume"}
_WELCOME_PREFIX = "!welcome"


def parse_interrupt(text: str) -> InterruptKind | None:
    """Return the interrupt a reply stands for, or None when it is an ordinary answer."""
    return _INTERRUPT_ALIASES.get((text or "").strip().lower())


def is_start_request(text: str) -> bool:
    return text.strip().lower() in _START_ALIASES


def is_exit_request(text: str) -> bool:
    return text.strip().lower() == "!exit"


def is_edit_request(text: str) -> bool:
    return text.strip().lower() == "!edit"


def is_help_request(text: str) -> bool:
    """Return True when text is a command-help request."""
    return text.strip().lower() in _HELP_ALIASES


def is_ping_request(text: str) -> bool:
    return text.strip().lower() in _PING_ALIASES


def is_resume_request(text: str) -> bool:
    return text.strip().lower() in _RESUME_ALIASES


def is_welcome_request(text: str) -> bool:
    """`!welcome @user` in a guild channel; the mention itself travels in metadata."""
    stripped = text.strip().lower()
    return stripped == _WELCOME_PREFIX or stripped.startswith(_WELCOME_PREFIX + " ")


def get_commands_text(is_dm: bool) -> str:
    """Return command help text for a DM or a guild channel."""
    lines = [
        "Here are the commands you can use:",
        "`!start` - Start the onboarding process",
        "`!exit` - Cancel onboarding",
        "`!edit` - Edit your answers (not available yet)",
        "`!restart` - Restart onboarding from the first question",
        "`!resume` - Review and get feedback on your resume!",
        "`!ping` - Check if the bot is online",
    ]
    if not is_dm:
        lines.append("`!welcome @user` - Welcome a user and start their onboarding")
    return "\n".join(lines)


def get_dialogue_commands_text() -> str:
    """Commands usable while answering onboarding questions."""
    return (
        "Commands you can use anytime:\n"
        "`!exit` - cancel onboarding\n"
        "`!edit` - not available yet; the current question is asked again\n"
        "`!restart` - restart onboarding from the beginning\n"
        "Optional questions can be answered with `skip`."
    )
