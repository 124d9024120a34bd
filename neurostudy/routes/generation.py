from dataclasses import asdict
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from neurostudy.dependencies import get_generation_service, get_workspace
from neurostudy.models import ChatMessage, InputType, StudyMode
from neurostudy.routes.helpers import get_study_or_404
from neurostudy.services.study import GenerationService
from neurostudy.workspace import Workspace

router = APIRouter(prefix="/api", tags=["generation"])

ARTIFACTS = ("slides", "quiz", "flashcards")


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class GuideRequest(BaseModel):
    mode: StudyMode | None = None


class QuizRequest(BaseModel):
    quantity: int | None = Field(default=None, ge=1, le=50)
    difficulty: Literal["easy", "medium", "hard", "mixed"] | None = None


class CheckpointUpdate(BaseModel):
    note_exactly: str | None = None
    draw_exactly: str | None = None
    completed: bool | None = None


class DiagramRequest(BaseModel):
    description: str | None = None


class RefineRequest(BaseModel):
    text: str
    task: Literal["simplify", "example", "mnemonic"]


class ChatTurn(BaseModel):
    role: Literal["user", "model"]
    text: str


class ChatRequest(BaseModel):
    message: str
    history: list[ChatTurn] = []
    study_id: str | None = None


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _require_guide(workspace: Workspace, study_id: str):
    study = get_study_or_404(workspace, study_id)
    if study.guide is None:
        raise HTTPException(
            status_code=400, detail="Generate a study guide for this study first."
        )
    return study


def _stored_or_404(applied: bool, study_id: str) -> None:
    if not applied:
        raise HTTPException(
            status_code=404, detail=f"Study {study_id} was removed during generation."
        )


# ------------------------------------------------------------------
# Study guide
# ------------------------------------------------------------------


@router.post("/studies/{study_id}/guide")
async def generate_guide(
    study_id: str,
    body: GuideRequest | None = None,
    workspace: Workspace = Depends(get_workspace),
    service: GenerationService = Depends(get_generation_service),
) -> dict:
    """Generate (or, with a new ``mode``, regenerate) the guide from the latest source."""
    study = get_study_or_404(workspace, study_id)
    regenerate = body is not None and body.mode is not None
    mode = body.mode if regenerate else study.mode

    source = workspace.store.latest_source(study_id)
    if source is None:
        raise HTTPException(
            status_code=400, detail="Add a source before generating a guide."
        )

    step = "transcribing" if source.type == InputType.VIDEO else "analyzing"
    async with workspace.generation(study_id, step):
        guide = await service.generate_guide(
            source.content,
            source.mime_type,
            mode,
            InputType(source.type).is_binary,
            filename=source.name,
        )

    # Mode and guide change together, only once generation has succeeded
    _stored_or_404(workspace.store.update_guide(study_id, guide), study_id)
    workspace.store.update_mode(study_id, mode)
    if not regenerate:
        workspace.open_study(study_id, "guide")
    return {"study_id": study_id, "mode": mode, "guide": asdict(guide)}


@router.patch("/studies/{study_id}/guide/checkpoints/{index}")
async def update_checkpoint(
    study_id: str,
    index: int,
    body: CheckpointUpdate,
    workspace: Workspace = Depends(get_workspace),
) -> dict:
    """Save the user's edits to one checkpoint's notes, drawing or completion."""
    study = _require_guide(workspace, study_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if not workspace.store.update_checkpoint(study_id, index, **changes):
        raise HTTPException(status_code=404, detail=f"Checkpoint {index} not found")
    return asdict(study.guide.checkpoints[index])


@router.post("/studies/{study_id}/guide/checkpoints/{index}/diagram")
async def generate_checkpoint_diagram(
    study_id: str,
    index: int,
    body: DiagramRequest | None = None,
    workspace: Workspace = Depends(get_workspace),
    service: GenerationService = Depends(get_generation_service),
) -> dict:
    """Draw the checkpoint's diagram and attach it as ``image_url``."""
    study = _require_guide(workspace, study_id)
    checkpoints = study.guide.checkpoints
    if not 0 <= index < len(checkpoints):
        raise HTTPException(status_code=404, detail=f"Checkpoint {index} not found")
    description = (body.description if body else None) or checkpoints[index].draw_exactly
    if not description:
        raise HTTPException(status_code=400, detail="This checkpoint has nothing to draw.")

    async with workspace.generation(study_id, "diagram"):
        image_url = await service.generate_diagram(description)

    _stored_or_404(
        workspace.store.update_checkpoint(study_id, index, image_url=image_url), study_id
    )
    return {"study_id": study_id, "index": index, "image_url": image_url}


# ------------------------------------------------------------------
# Derived artifacts
# ------------------------------------------------------------------


@router.post("/studies/{study_id}/slides")
async def generate_slides(
    study_id: str,
    workspace: Workspace = Depends(get_workspace),
    service: GenerationService = Depends(get_generation_service),
) -> dict:
    study = _require_guide(workspace, study_id)
    async with workspace.generation(study_id, "slides"):
        slides = await service.generate_slides(study.guide)
    _stored_or_404(workspace.store.update_slides(study_id, slides), study_id)
    return {"study_id": study_id, "slides": [asdict(s) for s in slides]}


@router.post("/studies/{study_id}/quiz")
async def generate_quiz(
    study_id: str,
    body: QuizRequest | None = None,
    workspace: Workspace = Depends(get_workspace),
    service: GenerationService = Depends(get_generation_service),
) -> dict:
    study = _require_guide(workspace, study_id)
    body = body or QuizRequest()
    async with workspace.generation(study_id, "quiz"):
        questions = await service.generate_quiz(
            study.guide, study.mode, body.quantity, body.difficulty
        )
    _stored_or_404(workspace.store.update_quiz(study_id, questions), study_id)
    return {"study_id": study_id, "questions": [asdict(q) for q in questions]}


@router.post("/studies/{study_id}/flashcards")
async def generate_flashcards(
    study_id: str,
    workspace: Workspace = Depends(get_workspace),
    service: GenerationService = Depends(get_generation_service),
) -> dict:
    study = _require_guide(workspace, study_id)
    async with workspace.generation(study_id, "flashcards"):
        cards = await service.generate_flashcards(study.guide)
    _stored_or_404(workspace.store.update_flashcards(study_id, cards), study_id)
    return {"study_id": study_id, "flashcards": [asdict(c) for c in cards]}


@router.delete("/studies/{study_id}/{artifact}")
async def clear_artifact(
    study_id: str, artifact: str, workspace: Workspace = Depends(get_workspace)
) -> dict:
    """Drop the slides, quiz or flashcards so they can be generated afresh."""
    if artifact not in ARTIFACTS:
        raise HTTPException(status_code=404, detail=f"Unknown artifact: {artifact}")
    get_study_or_404(workspace, study_id)
    getattr(workspace.store, f"update_{artifact}")(study_id, None)
    return {"study_id": study_id, "artifact": artifact, "status": "cleared"}


# ------------------------------------------------------------------
# Tutor tools
# ------------------------------------------------------------------


@router.post("/refine")
async def refine(
    body: RefineRequest, service: GenerationService = Depends(get_generation_service)
) -> dict:
    """Simplify a concept, give an example of it, or build a mnemonic."""
    return {"task": body.task, "text": await service.refine(body.text, body.task)}


@router.post("/chat")
async def chat(
    body: ChatRequest,
    workspace: Workspace = Depends(get_workspace),
    service: GenerationService = Depends(get_generation_service),
) -> dict:
    guide = None
    if body.study_id is not None:
        guide = get_study_or_404(workspace, body.study_id).guide
    history = [ChatMessage(role=turn.role, text=turn.text) for turn in body.history]
    reply = await service.chat(history, body.message, guide)
    return {"role": "model", "text": reply}
