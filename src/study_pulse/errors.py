"""Exception hierarchy shared by the engine, storage and API layers."""


class StudyPulseError(Exception):
    """Base class for every error raised by study_pulse."""


class ValidationError(StudyPulseError):
    """Submission input rejected; the message is shown to the caller verbatim."""


class NotFoundError(StudyPulseError):
    """Unknown participant, study or timepoint."""


class PersistenceError(StudyPulseError):
    """A storage read or write failed."""


class DuplicateMessageError(PersistenceError):
    """The message log already holds this (participant, template, channel, day) key."""


class ProtocolError(StudyPulseError):
    """The protocol document is malformed."""


class ConditionSyntaxError(StudyPulseError, ValueError):
    """A rule condition does not match `<identifier> <op> <integer>`."""


class InvalidTransitionError(StudyPulseError):
    """A participant lifecycle transition is not allowed."""
