from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from neurostudy.dependencies import get_workspace
from neurostudy.workspace import Workspace

router = APIRouter(prefix="/api", tags=["view"])


class ViewUpdate(BaseModel):
    active_study_id: str | None = None
    active_tab: Literal["sources", "guide", "slides", "quiz", "flashcards"] = "sources"


@router.get("/view")
async def get_view(workspace: Workspace = Depends(get_workspace)) -> dict:
    return workspace.view()


@router.put("/view")
async def set_view(body: ViewUpdate, workspace: Workspace = Depends(get_workspace)) -> dict:
    """Open a study on a tab, or close the current one with ``null``."""
    workspace.open_study(body.active_study_id, body.active_tab)
    return workspace.view()
