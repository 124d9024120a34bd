from fastapi import Request

from neurostudy.services.study import GenerationService
from neurostudy.workspace import Workspace


def get_workspace(request: Request) -> Workspace:
    """The process-wide workspace created in the app lifespan."""
    return request.app.state.workspace


def get_generation_service() -> GenerationService:
    """A generation service bound to the configured Groq credentials.

    Raises ``MissingCredentialsError`` when no API key is set.
    """
    return GenerationService()
