"""AnimeMatcher exception classes."""


class AnimeMatcherError(Exception):
    """Base class for all AnimeMatcher exceptions."""

    # Default HTTP status for API responses
    status_code: int = 500
    # Business error code placed in the response envelope
    code: int = 500


# Configuration errors
class ConfigError(AnimeMatcherError):
    """Base class for configuration-related errors."""

    status_code = 500
    code = 500


class DataPathError(ConfigError, ValueError):
    """The configured data directory path is invalid for the requested operation."""

    status_code = 400
    code = 400


# Request validation errors
class ValidationError(AnimeMatcherError, ValueError):
    """Malformed pagination, year, status or mapping values."""

    status_code = 400
    code = 400


class InvalidReviewStatusError(ValidationError):
    """The requested review status cannot be applied to the mapping."""


class InvalidMappingError(ValidationError):
    """A mapping write would break the id/review status invariants."""


# Not found errors
class NotFoundError(AnimeMatcherError, KeyError):
    """Base class for missing records."""

    status_code = 404
    code = 404

    def __str__(self) -> str:
        """Return the message without the quoting KeyError adds."""
        return str(self.args[0]) if self.args else ""


class AnimeNotFoundError(NotFoundError):
    """Requested anime could not be located."""


class MappingNotFoundError(NotFoundError):
    """The anime has no mapping for the requested platform."""


class JobNotFoundError(NotFoundError):
    """No job exists for the requested platform and year."""


# Conflict errors
class ConflictError(AnimeMatcherError):
    """Base class for state conflicts."""

    status_code = 409
    code = 409


class JobConflictError(ConflictError):
    """A job already exists for the requested platform and year."""


class InvalidJobStateError(ConflictError):
    """The job's current status does not allow the requested transition."""


# Provider errors
class ProviderError(AnimeMatcherError):
    """A single match request failed; the job records it as a failed item."""

    status_code = 502
    code = 502


class ProviderSystemicError(ProviderError):
    """Provider configuration or credentials are broken; the job cannot continue."""

    status_code = 503
    code = 503
    retryable: bool = False


class ProviderUnavailableError(ProviderSystemicError):
    """The provider endpoint could not be reached."""

    retryable = True


class UnsupportedProviderError(ProviderSystemicError, ValueError):
    """No adapter exists for the requested provider."""


# Storage errors
class StorageError(AnimeMatcherError):
    """Base class for export/import/compact I/O failures."""

    status_code = 500
    code = 500


class ExportFileNotFoundError(StorageError, FileNotFoundError):
    """No export file exists for the requested year."""

    status_code = 404
    code = 404


class BulkDataParseError(StorageError, ValueError):
    """Export file content could not be parsed."""

    status_code = 400
    code = 400


# Scheduler errors
class SchedulerError(AnimeMatcherError):
    """Base class for scheduler-related failures."""

    status_code = 500
    code = 500


class SchedulerNotInitializedError(SchedulerError, RuntimeError):
    """A scheduler instance is required but not available/initialized."""

    status_code = 503
    code = 503
