import dataclasses

from neurostudy.config import settings
from neurostudy.errors import EmptyFolderExamError, NotFoundError
from neurostudy.models import StudyGuide
from neurostudy.store import StudyStore


def build_folder_exam_guide(store: StudyStore, folder_id: str) -> StudyGuide:
    """Merge every generated guide in one folder into a single exam guide.

    Concepts and checkpoints are concatenated in folder order with no
    deduplication.  Checkpoint notes are cut to ``exam_note_max_chars``.
    The source studies are left untouched.
    """
    folder = store.get_folder(folder_id)
    if folder is None:
        raise NotFoundError(f"Folder {folder_id} not found")

    studies = [s for s in store.list_studies(folder_id) if s.guide is not None]
    if not studies:
        raise EmptyFolderExamError("No generated guides in this folder.")

    cap = settings.exam_note_max_chars
    titles = ", ".join(s.title for s in studies)
    return StudyGuide(
        subject=f"Exam: {folder.name}",
        overview=f"Unified exam covering {len(studies)} studies: {titles}.",
        core_concepts=[
            dataclasses.replace(c) for s in studies for c in s.guide.core_concepts
        ],
        checkpoints=[
            dataclasses.replace(cp, note_exactly=cp.note_exactly[:cap])
            for s in studies
            for cp in s.guide.checkpoints
        ],
    )
