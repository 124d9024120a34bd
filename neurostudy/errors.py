class StudyError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(StudyError):
    status_code = 404


class MissingCredentialsError(StudyError):
    """No access credential is configured for the generation service."""

    status_code = 503


class GenerationError(StudyError):
    """A call to the generation service failed or returned unusable output."""

    status_code = 502


class GenerationInProgressError(StudyError):
    status_code = 409


class EmptyFolderExamError(StudyError):
    status_code = 400


class SourceExtractionError(StudyError):
    status_code = 422


class MarkdownParseError(StudyError):
    status_code = 422
