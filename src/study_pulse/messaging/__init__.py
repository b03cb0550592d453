from study_pulse.messaging.senders import (
    DisabledSmsSender,
    EmailSender,
    LogOnlySmsSender,
    Sender,
    build_senders,
)
from study_pulse.messaging.templates import RenderedEmail, build_email, render_text

__all__ = [
    "DisabledSmsSender",
    "EmailSender",
    "LogOnlySmsSender",
    "RenderedEmail",
    "Sender",
    "build_email",
    "build_senders",
    "render_text",
]
