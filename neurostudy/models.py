import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

DEFAULT_FOLDER_ID = "default"
QUICK_FOLDER_ID = "quick-studies"
RESERVED_FOLDER_IDS = frozenset({DEFAULT_FOLDER_ID, QUICK_FOLDER_ID})


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InputType(str, Enum):
    TEXT = "TEXT"
    PDF = "PDF"
    DOI = "DOI"
    VIDEO = "VIDEO"
    URL = "URL"
    IMAGE = "IMAGE"

    @property
    def is_binary(self) -> bool:
        return self in (InputType.PDF, InputType.VIDEO, InputType.IMAGE)


class StudyMode(str, Enum):
    NORMAL = "NORMAL"
    TURBO = "TURBO"
    SURVIVAL = "SURVIVAL"


# ---------------------------------------------------------------------------
# Folder tree
# ---------------------------------------------------------------------------


@dataclass
class Folder:
    id: str
    name: str
    parent_id: str | None = None
    color: str | None = None


# ---------------------------------------------------------------------------
# Study guide
# ---------------------------------------------------------------------------


@dataclass
class CoreConcept:
    concept: str
    definition: str


@dataclass
class Checkpoint:
    mission: str
    timestamp: str
    look_for: str
    note_exactly: str
    question: str
    draw_exactly: str = ""
    draw_label: str = "none"  # essential | suggestion | none
    image_url: str | None = None
    completed: bool = False
    completed_at: datetime | None = None


@dataclass
class StudyGuide:
    subject: str
    overview: str
    core_concepts: list[CoreConcept] = field(default_factory=list)
    checkpoints: list[Checkpoint] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "StudyGuide":
        """Build a guide from the generation service's JSON payload."""
        return cls(
            subject=data["subject"],
            overview=data["overview"],
            core_concepts=[
                CoreConcept(concept=c["concept"], definition=c["definition"])
                for c in data.get("core_concepts", [])
            ],
            checkpoints=[
                Checkpoint(
                    mission=cp["mission"],
                    timestamp=cp["timestamp"],
                    look_for=cp["look_for"],
                    note_exactly=cp["note_exactly"],
                    question=cp["question"],
                    draw_exactly=cp.get("draw_exactly") or "",
                    draw_label=cp.get("draw_label") or "none",
                    image_url=cp.get("image_url"),
                    completed=bool(cp.get("completed", False)),
                )
                for cp in data.get("checkpoints", [])
            ],
        )


# ---------------------------------------------------------------------------
# Derived artifacts
# ---------------------------------------------------------------------------


@dataclass
class Slide:
    title: str
    bullets: list[str]
    speaker_notes: str


@dataclass
class QuizQuestion:
    id: str
    type: str  # multiple_choice | open
    difficulty: str  # easy | medium | hard
    question: str
    correct_answer: str
    explanation: str
    options: list[str] = field(default_factory=list)


@dataclass
class Flashcard:
    id: str
    front: str
    back: str


@dataclass
class ChatMessage:
    role: str  # user | model
    text: str
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Study sessions
# ---------------------------------------------------------------------------


@dataclass
class StudySource:
    type: InputType
    name: str
    content: str  # raw text or base64
    mime_type: str | None = None
    id: str = field(default_factory=new_id)
    date_added: datetime = field(default_factory=utcnow)


@dataclass
class StudySession:
    id: str
    folder_id: str
    title: str
    mode: StudyMode = StudyMode.NORMAL
    sources: list[StudySource] = field(default_factory=list)
    guide: StudyGuide | None = None
    slides: list[Slide] | None = None
    quiz: list[QuizQuestion] | None = None
    flashcards: list[Flashcard] | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ProcessingState:
    is_loading: bool = False
    error: str | None = None
    step: str = "idle"  # idle | analyzing | transcribing | generating | slides | quiz | flashcards | diagram | complete
