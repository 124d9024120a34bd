import pytest
from fastapi.testclient import TestClient

from neurostudy.dependencies import get_generation_service
from neurostudy.main import app
from neurostudy.models import (
    Checkpoint,
    CoreConcept,
    Flashcard,
    QuizQuestion,
    Slide,
    StudyGuide,
)
from neurostudy.store import StudyStore
from neurostudy.workspace import Workspace


def make_guide(
    subject: str = "Cell Biology",
    concepts: int = 2,
    checkpoints: int = 1,
    note: str = "Mitochondria make ATP.",
) -> StudyGuide:
    return StudyGuide(
        subject=subject,
        overview=f"An overview of {subject}.",
        core_concepts=[
            CoreConcept(concept=f"{subject} concept {i}", definition=f"Definition {i}")
            for i in range(concepts)
        ],
        checkpoints=[
            Checkpoint(
                mission=f"{subject} mission {i}",
                timestamp=f"Section {i + 1}",
                look_for="Key terms",
                note_exactly=note,
                question="Why?",
                draw_exactly="A labelled cell",
                draw_label="suggestion",
            )
            for i in range(checkpoints)
        ],
    )


class FakeGenerationService:
    """Stands in for GenerationService in API tests; records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.fail_with: Exception | None = None

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if self.fail_with is not None:
            raise self.fail_with

    async def generate_guide(self, content, mime_type, mode, is_binary, filename="source"):
        self._record("guide", content, mime_type, mode, is_binary)
        return make_guide(subject=f"Guide for {mode.value}")

    async def generate_slides(self, guide):
        self._record("slides", guide.subject)
        return [Slide(title="Intro", bullets=["a", "b"], speaker_notes="Say hi")]

    async def generate_quiz(self, guide, mode, quantity=None, difficulty=None):
        self._record("quiz", guide.subject, mode, quantity, difficulty)
        return [
            QuizQuestion(
                id="q1",
                type="multiple_choice",
                difficulty="easy",
                question="What makes ATP?",
                options=["Nucleus", "Mitochondria", "Ribosome", "Golgi"],
                correct_answer="1",
                explanation="Mitochondria are the powerhouse.",
            )
        ]

    async def generate_flashcards(self, guide):
        self._record("flashcards", guide.subject)
        return [Flashcard(id="f1", front="ATP?", back="Energy currency")]

    async def refine(self, text, task):
        self._record("refine", text, task)
        return f"{task}: {text}"

    async def generate_diagram(self, description):
        self._record("diagram", description)
        return "data:image/svg+xml;base64,PHN2Zy8+"

    async def chat(self, history, message, guide=None):
        self._record("chat", len(history), message, guide.subject if guide else None)
        return "Think about energy."


@pytest.fixture
def store() -> StudyStore:
    return StudyStore()


@pytest.fixture
def workspace(store) -> Workspace:
    return Workspace(store)


@pytest.fixture
def fake_service() -> FakeGenerationService:
    return FakeGenerationService()


@pytest.fixture
def client(fake_service):
    app.dependency_overrides[get_generation_service] = lambda: fake_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
