from dataclasses import asdict

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel

from neurostudy.dependencies import get_workspace
from neurostudy.models import DEFAULT_FOLDER_ID, InputType, StudyMode, StudySource
from neurostudy.routes.helpers import get_folder_or_404, get_study_or_404, study_dict
from neurostudy.services.sources import decode_content, file_source, text_source
from neurostudy.workspace import Workspace

router = APIRouter(prefix="/api", tags=["studies"])


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class StudyCreate(BaseModel):
    title: str
    folder_id: str = DEFAULT_FOLDER_ID
    mode: StudyMode = StudyMode.NORMAL


class StudyUpdate(BaseModel):
    title: str | None = None
    mode: StudyMode | None = None


class StudyMove(BaseModel):
    folder_id: str


class SourceCreate(BaseModel):
    content: str
    type: InputType = InputType.TEXT
    name: str | None = None
    mime_type: str | None = None


class QuickStart(SourceCreate):
    mode: StudyMode = StudyMode.NORMAL


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _build_source(body: SourceCreate) -> StudySource:
    if not body.content.strip():
        raise HTTPException(status_code=400, detail="Source content cannot be empty.")
    if body.type.is_binary:
        decode_content(body.content)  # reject non-base64 payloads early
        return StudySource(
            type=body.type,
            name=body.name or body.type.value.lower(),
            content=body.content,
            mime_type=body.mime_type or "application/octet-stream",
        )
    return text_source(body.type, body.content, body.name)


async def _read_upload(file: UploadFile) -> StudySource:
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    return file_source(file.filename or "upload", data, file.content_type)


# ------------------------------------------------------------------
# Study endpoints
# ------------------------------------------------------------------


@router.get("/studies")
async def list_studies(
    folder_id: str | None = None, workspace: Workspace = Depends(get_workspace)
) -> list[dict]:
    return [study_dict(s) for s in workspace.store.list_studies(folder_id)]


@router.post("/studies")
async def create_study(body: StudyCreate, workspace: Workspace = Depends(get_workspace)) -> dict:
    """Create an empty study and open it on the sources tab."""
    if not body.title.strip():
        raise HTTPException(status_code=400, detail="Study title cannot be empty.")
    study = workspace.start_study(body.folder_id, body.title, body.mode)
    return study_dict(study)


@router.get("/studies/{study_id}")
async def get_study(
    study_id: str,
    include_content: bool = False,
    workspace: Workspace = Depends(get_workspace),
) -> dict:
    return study_dict(get_study_or_404(workspace, study_id), include_content)


@router.patch("/studies/{study_id}")
async def update_study(
    study_id: str, body: StudyUpdate, workspace: Workspace = Depends(get_workspace)
) -> dict:
    """Rename a study and/or change its mode without regenerating."""
    study = get_study_or_404(workspace, study_id)
    if body.title is not None and not workspace.store.rename_study(study_id, body.title):
        raise HTTPException(status_code=400, detail="Study title cannot be empty.")
    if body.mode is not None:
        workspace.store.update_mode(study_id, body.mode)
    return study_dict(study)


@router.post("/studies/{study_id}/move")
async def move_study(
    study_id: str, body: StudyMove, workspace: Workspace = Depends(get_workspace)
) -> dict:
    study = get_study_or_404(workspace, study_id)
    get_folder_or_404(workspace.store, body.folder_id)
    workspace.store.move_study(study_id, body.folder_id)
    return study_dict(study)


@router.delete("/studies/{study_id}")
async def delete_study(study_id: str, workspace: Workspace = Depends(get_workspace)) -> dict:
    if not workspace.delete_study(study_id):
        raise HTTPException(status_code=404, detail=f"Study {study_id} not found")
    return {"study_id": study_id, "status": "deleted"}


@router.get("/studies/{study_id}/status")
async def get_status(study_id: str, workspace: Workspace = Depends(get_workspace)) -> dict:
    """Processing state of the study's most recent generation call."""
    get_study_or_404(workspace, study_id)
    return {"study_id": study_id, **asdict(workspace.processing(study_id))}


# ------------------------------------------------------------------
# Source endpoints
# ------------------------------------------------------------------


@router.post("/studies/{study_id}/sources")
async def add_source(
    study_id: str, body: SourceCreate, workspace: Workspace = Depends(get_workspace)
) -> dict:
    """Attach pasted text, a DOI, a URL or a base64-encoded file."""
    get_study_or_404(workspace, study_id)
    source = _build_source(body)
    workspace.store.add_source(study_id, source)
    return {"study_id": study_id, "source_id": source.id, "name": source.name}


@router.post("/studies/{study_id}/sources/upload")
async def upload_source(
    study_id: str,
    file: UploadFile = File(...),
    workspace: Workspace = Depends(get_workspace),
) -> dict:
    """Upload a PDF, presentation, image, audio or video file as a source."""
    get_study_or_404(workspace, study_id)
    source = await _read_upload(file)
    workspace.store.add_source(study_id, source)
    return {
        "study_id": study_id,
        "source_id": source.id,
        "name": source.name,
        "type": source.type,
    }


@router.delete("/studies/{study_id}/sources/{source_id}")
async def remove_source(
    study_id: str, source_id: str, workspace: Workspace = Depends(get_workspace)
) -> dict:
    get_study_or_404(workspace, study_id)
    if not workspace.store.remove_source(study_id, source_id):
        raise HTTPException(status_code=404, detail=f"Source {source_id} not found")
    return {"study_id": study_id, "source_id": source_id, "status": "removed"}


# ------------------------------------------------------------------
# Quick start
# ------------------------------------------------------------------


@router.post("/quick-start")
async def quick_start(body: QuickStart, workspace: Workspace = Depends(get_workspace)) -> dict:
    """Create a study in the quick-studies folder holding one source."""
    study = workspace.quick_start(_build_source(body), body.mode)
    return study_dict(study)


@router.post("/quick-start/upload")
async def quick_start_upload(
    file: UploadFile = File(...),
    mode: StudyMode = Form(StudyMode.SURVIVAL),
    workspace: Workspace = Depends(get_workspace),
) -> dict:
    """Pareto 80/20 fast track: upload a file straight into a quick study."""
    study = workspace.quick_start(await _read_upload(file), mode)
    return study_dict(study)
