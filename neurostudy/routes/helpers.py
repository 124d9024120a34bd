from dataclasses import asdict

from fastapi import HTTPException

from neurostudy.models import Folder, StudySession
from neurostudy.store import StudyStore
from neurostudy.workspace import Workspace


def folder_dict(folder: Folder) -> dict:
    return asdict(folder)


def study_dict(study: StudySession, include_content: bool = False) -> dict:
    """Serialize a study; source payloads are omitted unless asked for."""
    data = asdict(study)
    if not include_content:
        for src in data["sources"]:
            src.pop("content", None)
    return data


def get_study_or_404(workspace: Workspace, study_id: str) -> StudySession:
    study = workspace.store.get_study(study_id)
    if study is None:
        raise HTTPException(status_code=404, detail=f"Study {study_id} not found")
    return study


def get_folder_or_404(store: StudyStore, folder_id: str) -> Folder:
    folder = store.get_folder(folder_id)
    if folder is None:
        raise HTTPException(status_code=404, detail=f"Folder {folder_id} not found")
    return folder
