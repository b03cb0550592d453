from study_pulse.storage.base import StudyStore
from study_pulse.storage.memory import InMemoryStore

_default_store: StudyStore | None = None


def get_default_store() -> StudyStore:
    """Process-wide store owned by the API process."""
    global _default_store  # noqa: PLW0603
    if _default_store is None:
        _default_store = InMemoryStore()
    return _default_store


__all__ = ["StudyStore", "InMemoryStore", "get_default_store"]
