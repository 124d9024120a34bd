import dataclasses
import logging

from neurostudy.config import settings
from neurostudy.models import (
    DEFAULT_FOLDER_ID,
    QUICK_FOLDER_ID,
    RESERVED_FOLDER_IDS,
    Flashcard,
    Folder,
    QuizQuestion,
    Slide,
    StudyGuide,
    StudyMode,
    StudySession,
    StudySource,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)

_UNSET = object()


class StudyStore:
    """In-memory arena of folders and study sessions.

    Folders form a tree through ``parent_id`` foreign keys; studies point at
    exactly one folder through ``folder_id``.  Neither owns the other, so
    removing a folder is an explicit cascading sweep.

    Every mutation is all-or-nothing.  Operations given an unknown id are
    no-ops that return ``False`` (or an empty result) rather than raising.
    """

    def __init__(self) -> None:
        self._folders: dict[str, Folder] = {}
        self._studies: dict[str, StudySession] = {}
        self._folders[DEFAULT_FOLDER_ID] = Folder(
            id=DEFAULT_FOLDER_ID, name=settings.default_folder_name
        )
        self._folders[QUICK_FOLDER_ID] = Folder(
            id=QUICK_FOLDER_ID, name=settings.quick_folder_name
        )

    # ------------------------------------------------------------------
    # Folder queries
    # ------------------------------------------------------------------

    def get_folder(self, folder_id: str | None) -> Folder | None:
        if folder_id is None:
            return None
        return self._folders.get(folder_id)

    def list_folders(self) -> list[Folder]:
        return list(self._folders.values())

    def children(self, parent_id: str | None) -> list[Folder]:
        """Direct child folders of *parent_id* (``None`` lists the roots)."""
        return [f for f in self._folders.values() if f.parent_id == parent_id]

    def descendants(self, folder_id: str) -> set[str]:
        """Ids of *folder_id* and every folder reachable below it."""
        if folder_id not in self._folders:
            return set()
        closure = {folder_id}
        stack = [folder_id]
        while stack:
            current = stack.pop()
            for child in self.children(current):
                if child.id not in closure:
                    closure.add(child.id)
                    stack.append(child.id)
        return closure

    def ancestors(self, folder_id: str | None) -> list[str]:
        """Ids from *folder_id* up to its root, inclusive.

        Stops on a repeated id so a corrupt cyclic chain cannot loop forever.
        """
        chain: list[str] = []
        seen: set[str] = set()
        current = self.get_folder(folder_id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            chain.append(current.id)
            current = self.get_folder(current.parent_id)
        return chain

    def folder_path(self, folder_id: str) -> list[Folder]:
        """Breadcrumb from the root down to *folder_id*."""
        return [self._folders[fid] for fid in reversed(self.ancestors(folder_id))]

    # ------------------------------------------------------------------
    # Folder mutations
    # ------------------------------------------------------------------

    def create_folder(
        self, name: str, parent_id: str | None = None, color: str | None = None
    ) -> str:
        folder = Folder(id=new_id(), name=name, parent_id=parent_id, color=color)
        self._folders[folder.id] = folder
        logger.info("Created folder %s (%r) under %s", folder.id, name, parent_id)
        return folder.id

    def rename_folder(self, folder_id: str, new_name: str) -> bool:
        folder = self._folders.get(folder_id)
        if folder is None:
            return False
        folder.name = new_name
        return True

    def move_folder(self, folder_id: str, target_parent_id: str | None) -> bool:
        """Re-parent *folder_id* under *target_parent_id* (``None`` = root).

        Refused when the target is the folder itself or one of its
        descendants, or when either id is unknown.
        """
        folder = self._folders.get(folder_id)
        if folder is None:
            return False
        if folder_id == target_parent_id:
            return False
        if target_parent_id is not None:
            if target_parent_id not in self._folders:
                return False
            if folder_id in self.ancestors(target_parent_id):
                logger.warning(
                    "Refusing to move folder %s into its own descendant %s",
                    folder_id,
                    target_parent_id,
                )
                return False
        folder.parent_id = target_parent_id
        return True

    def delete_folder(self, folder_id: str) -> tuple[set[str], set[str]]:
        """Remove *folder_id*, its descendant folders and their studies.

        Returns ``(removed_folder_ids, removed_study_ids)``.  Reserved folders
        and unknown ids remove nothing.
        """
        if folder_id in RESERVED_FOLDER_IDS:
            logger.warning("Refusing to delete reserved folder %s", folder_id)
            return set(), set()
        closure = self.descendants(folder_id)
        if not closure:
            return set(), set()
        removed_studies = {
            s.id for s in self._studies.values() if s.folder_id in closure
        }
        self._folders = {
            fid: f for fid, f in self._folders.items() if fid not in closure
        }
        self._studies = {
            sid: s for sid, s in self._studies.items() if sid not in removed_studies
        }
        logger.info(
            "Deleted %d folder(s) and %d study(ies) under %s",
            len(closure),
            len(removed_studies),
            folder_id,
        )
        return closure, removed_studies

    # ------------------------------------------------------------------
    # Study queries
    # ------------------------------------------------------------------

    def get_study(self, study_id: str | None) -> StudySession | None:
        if study_id is None:
            return None
        return self._studies.get(study_id)

    def list_studies(self, folder_id: str | None = None) -> list[StudySession]:
        """Studies in insertion order, optionally limited to one folder."""
        if folder_id is None:
            return list(self._studies.values())
        return [s for s in self._studies.values() if s.folder_id == folder_id]

    def latest_source(self, study_id: str) -> StudySource | None:
        study = self._studies.get(study_id)
        if study is None or not study.sources:
            return None
        return study.sources[-1]

    # ------------------------------------------------------------------
    # Study mutations
    # ------------------------------------------------------------------

    def create_study(
        self, folder_id: str, title: str, mode: StudyMode = StudyMode.NORMAL
    ) -> StudySession:
        study = StudySession(id=new_id(), folder_id=folder_id, title=title, mode=mode)
        self._studies[study.id] = study
        logger.info("Created study %s (%r) in folder %s", study.id, title, folder_id)
        return study

    def delete_study(self, study_id: str) -> bool:
        if self._studies.pop(study_id, None) is None:
            return False
        logger.info("Deleted study %s", study_id)
        return True

    def move_study(self, study_id: str, target_folder_id: str) -> bool:
        return self._set(study_id, folder_id=target_folder_id)

    def rename_study(self, study_id: str, title: str) -> bool:
        if not title.strip():
            return False
        return self._set(study_id, title=title)

    def add_source(self, study_id: str, source: StudySource) -> bool:
        study = self._studies.get(study_id)
        if study is None:
            return False
        return self._set(study_id, sources=[*study.sources, source])

    def remove_source(self, study_id: str, source_id: str) -> bool:
        study = self._studies.get(study_id)
        if study is None:
            return False
        remaining = [src for src in study.sources if src.id != source_id]
        if len(remaining) == len(study.sources):
            return False
        return self._set(study_id, sources=remaining)

    def update_guide(self, study_id: str, guide: StudyGuide | None) -> bool:
        return self._set(study_id, guide=guide)

    def update_mode(self, study_id: str, mode: StudyMode) -> bool:
        return self._set(study_id, mode=mode)

    def update_slides(self, study_id: str, slides: list[Slide] | None) -> bool:
        return self._set(study_id, slides=slides)

    def update_quiz(self, study_id: str, quiz: list[QuizQuestion] | None) -> bool:
        return self._set(study_id, quiz=quiz)

    def update_flashcards(
        self, study_id: str, flashcards: list[Flashcard] | None
    ) -> bool:
        return self._set(study_id, flashcards=flashcards)

    def update_checkpoint(
        self,
        study_id: str,
        index: int,
        *,
        note_exactly=_UNSET,
        draw_exactly=_UNSET,
        completed=_UNSET,
        image_url=_UNSET,
    ) -> bool:
        """Replace the user-editable fields of one checkpoint.

        Toggling ``completed`` on stamps ``completed_at``; toggling it off
        clears it.  Every other checkpoint is carried over untouched.
        """
        study = self._studies.get(study_id)
        if study is None or study.guide is None:
            return False
        checkpoints = study.guide.checkpoints
        if not 0 <= index < len(checkpoints):
            return False

        changes: dict = {}
        if note_exactly is not _UNSET:
            changes["note_exactly"] = note_exactly
        if draw_exactly is not _UNSET:
            changes["draw_exactly"] = draw_exactly
        if image_url is not _UNSET:
            changes["image_url"] = image_url
        if completed is not _UNSET:
            changes["completed"] = bool(completed)
            changes["completed_at"] = utcnow() if completed else None

        updated = list(checkpoints)
        updated[index] = dataclasses.replace(checkpoints[index], **changes)
        guide = dataclasses.replace(study.guide, checkpoints=updated)
        return self._set(study_id, guide=guide)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _set(self, study_id: str, **fields) -> bool:
        study = self._studies.get(study_id)
        if study is None:
            return False
        for name, value in fields.items():
            setattr(study, name, value)
        study.updated_at = utcnow()
        return True
