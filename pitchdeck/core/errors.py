"""Domain exceptions shared by the job pipeline, its collaborators and the HTTP layer."""


class PitchDeckError(Exception):
    """Base class for every error raised by this service."""


# -------------------------
# Collaborators
# -------------------------

class CollaboratorError(PitchDeckError):
    """An external system (LLM API, renderer, object store, record store) failed."""


class GenerationError(CollaboratorError):
    pass


class RenderError(CollaboratorError):
    pass


class StorageError(CollaboratorError):
    pass


class PersistenceError(CollaboratorError):
    pass


class CollaboratorTimeoutError(CollaboratorError):
    pass


# -------------------------
# Progress tracker
# -------------------------

class TrackerError(PitchDeckError):
    pass


class ChannelExistsError(TrackerError):
    pass


class ChannelNotFoundError(TrackerError):
    pass


class ChannelClosedError(TrackerError):
    pass


class ChannelFullError(TrackerError):
    pass


# -------------------------
# Job control
# -------------------------

class JobAbortedError(PitchDeckError):
    """The job stopped before finishing a step because its context ran out or was cancelled."""


class JobTimeoutError(JobAbortedError):
    pass


class JobCancelledError(JobAbortedError):
    pass


# -------------------------
# Deck access
# -------------------------

class DeckNotFoundError(PitchDeckError):
    pass


class DeckForbiddenError(PitchDeckError):
    pass


class AuthError(PitchDeckError):
    pass
