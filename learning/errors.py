"""Error taxonomy shared by the tutoring core, the stores and the API."""


class TutorError(Exception):
    """Base class for every error the tutoring core raises on purpose."""

    status_code = 500


class NotFoundError(TutorError):
    """A user, session or skill does not exist."""

    status_code = 404


class InvalidInputError(TutorError):
    """Malformed or missing input. Raised before any state is touched."""

    status_code = 400


class InvalidStateError(TutorError):
    """The session cannot make the requested transition (depth limit, loop, ended session)."""

    status_code = 409


class ExternalServiceError(TutorError):
    """A store or LLM call failed. No partial state is written."""

    status_code = 502


class ExternalServiceTimeout(ExternalServiceError):
    """An external call exceeded its timeout."""

    status_code = 504
