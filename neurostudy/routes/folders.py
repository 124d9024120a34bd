from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from neurostudy.dependencies import get_workspace
from neurostudy.models import QUICK_FOLDER_ID, RESERVED_FOLDER_IDS
from neurostudy.routes.helpers import folder_dict, get_folder_or_404, study_dict
from neurostudy.store import StudyStore
from neurostudy.workspace import Workspace

router = APIRouter(prefix="/api", tags=["folders"])


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class FolderCreate(BaseModel):
    name: str
    parent_id: str | None = None
    color: str | None = None


class FolderRename(BaseModel):
    name: str


class FolderMove(BaseModel):
    parent_id: str | None = None


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _tree(store: StudyStore, parent_id: str | None) -> list[dict]:
    """Nested view of the folder arena for the sidebar."""
    nodes = []
    for folder in store.children(parent_id):
        node = folder_dict(folder)
        node["studies"] = [
            {"id": s.id, "title": s.title, "mode": s.mode, "has_guide": s.guide is not None}
            for s in store.list_studies(folder.id)
        ]
        node["children"] = _tree(store, folder.id)
        nodes.append(node)
    return nodes


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@router.get("/folders")
async def list_folders(workspace: Workspace = Depends(get_workspace)) -> list[dict]:
    return [folder_dict(f) for f in workspace.store.list_folders()]


@router.get("/folders/tree")
async def folder_tree(workspace: Workspace = Depends(get_workspace)) -> list[dict]:
    return _tree(workspace.store, None)


@router.post("/folders")
async def create_folder(
    body: FolderCreate, workspace: Workspace = Depends(get_workspace)
) -> dict:
    if not body.name.strip():
        raise HTTPException(status_code=400, detail="Folder name cannot be empty.")
    store = workspace.store
    if body.parent_id is not None:
        get_folder_or_404(store, body.parent_id)
    folder_id = store.create_folder(body.name, body.parent_id, body.color)
    return folder_dict(store.get_folder(folder_id))


@router.get("/folders/{folder_id}")
async def get_folder(folder_id: str, workspace: Workspace = Depends(get_workspace)) -> dict:
    store = workspace.store
    folder = get_folder_or_404(store, folder_id)
    result = folder_dict(folder)
    result["path"] = [folder_dict(f) for f in store.folder_path(folder_id)]
    result["children"] = [folder_dict(f) for f in store.children(folder_id)]
    result["studies"] = [study_dict(s) for s in store.list_studies(folder_id)]
    return result


@router.patch("/folders/{folder_id}")
async def rename_folder(
    folder_id: str, body: FolderRename, workspace: Workspace = Depends(get_workspace)
) -> dict:
    """Rename a folder.  The quick-studies folder keeps its name."""
    if folder_id == QUICK_FOLDER_ID:
        raise HTTPException(status_code=403, detail="The quick-studies folder cannot be renamed.")
    if not body.name.strip():
        raise HTTPException(status_code=400, detail="Folder name cannot be empty.")
    if not workspace.store.rename_folder(folder_id, body.name):
        raise HTTPException(status_code=404, detail=f"Folder {folder_id} not found")
    return folder_dict(workspace.store.get_folder(folder_id))


@router.post("/folders/{folder_id}/move")
async def move_folder(
    folder_id: str, body: FolderMove, workspace: Workspace = Depends(get_workspace)
) -> dict:
    """Re-parent a folder; ``parent_id: null`` moves it to the root."""
    store = workspace.store
    if folder_id == QUICK_FOLDER_ID:
        raise HTTPException(status_code=403, detail="The quick-studies folder cannot be moved.")
    get_folder_or_404(store, folder_id)
    if body.parent_id is not None:
        get_folder_or_404(store, body.parent_id)
    if not store.move_folder(folder_id, body.parent_id):
        raise HTTPException(
            status_code=409,
            detail="Cannot move a folder into itself or one of its subfolders.",
        )
    return folder_dict(store.get_folder(folder_id))


@router.delete("/folders/{folder_id}")
async def delete_folder(folder_id: str, workspace: Workspace = Depends(get_workspace)) -> dict:
    """Delete a folder, all of its subfolders and every study inside them."""
    if folder_id in RESERVED_FOLDER_IDS:
        raise HTTPException(status_code=403, detail=f"Folder '{folder_id}' is protected.")
    get_folder_or_404(workspace.store, folder_id)
    folders, studies = workspace.delete_folder(folder_id)
    return {"deleted_folders": sorted(folders), "deleted_studies": sorted(studies)}


@router.post("/folders/{folder_id}/exam")
async def create_folder_exam(
    folder_id: str, workspace: Workspace = Depends(get_workspace)
) -> dict:
    """Merge every generated guide in the folder into a new exam study."""
    study = workspace.folder_exam(folder_id)
    return {"study": study_dict(study), "view": workspace.view()}
