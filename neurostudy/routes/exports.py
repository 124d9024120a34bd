import asyncio
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel

from neurostudy.dependencies import get_workspace
from neurostudy.routes.helpers import get_study_or_404
from neurostudy.services.export import (
    export_filename,
    guide_to_markdown,
    markdown_to_guide,
    slides_to_pptx,
)
from neurostudy.workspace import Workspace

router = APIRouter(prefix="/api", tags=["export"])

PPTX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"


class MarkdownImport(BaseModel):
    markdown: str


def _attachment(filename: str) -> dict:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


@router.get("/studies/{study_id}/export/markdown")
async def export_markdown(study_id: str, workspace: Workspace = Depends(get_workspace)) -> Response:
    """Download the guide as an Obsidian-style markdown note."""
    study = get_study_or_404(workspace, study_id)
    if study.guide is None:
        raise HTTPException(status_code=400, detail="This study has no guide to export.")
    return Response(
        content=guide_to_markdown(study.guide),
        media_type="text/markdown; charset=utf-8",
        headers=_attachment(export_filename(study.guide.subject, "_notes.md")),
    )


@router.post("/studies/{study_id}/import/markdown")
async def import_markdown(
    study_id: str, body: MarkdownImport, workspace: Workspace = Depends(get_workspace)
) -> dict:
    """Replace the study's guide with one parsed from an exported note.

    Holds the study's generation slot so the guide cannot be swapped out
    under a running diagram or guide generation.
    """
    get_study_or_404(workspace, study_id)
    guide = markdown_to_guide(body.markdown)
    async with workspace.generation(study_id, "generating"):
        workspace.store.update_guide(study_id, guide)
    return {"study_id": study_id, "guide": asdict(guide)}


@router.get("/studies/{study_id}/export/slides.pptx")
async def export_slides(study_id: str, workspace: Workspace = Depends(get_workspace)) -> Response:
    """Download the generated slide deck as a PowerPoint file."""
    study = get_study_or_404(workspace, study_id)
    if not study.slides:
        raise HTTPException(status_code=400, detail="This study has no slides to export.")
    title = study.guide.subject if study.guide else study.title
    # python-pptx serialization is blocking; offload to thread pool
    data = await asyncio.to_thread(slides_to_pptx, study.slides, title)
    return Response(
        content=data,
        media_type=PPTX_MEDIA_TYPE,
        headers=_attachment(export_filename(title, "_slides.pptx")),
    )
