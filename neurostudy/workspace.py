import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from neurostudy.errors import GenerationInProgressError, NotFoundError, StudyError
from neurostudy.models import (
    QUICK_FOLDER_ID,
    ProcessingState,
    StudyMode,
    StudySession,
    StudySource,
)
from neurostudy.services.exam import build_folder_exam_guide
from neurostudy.store import StudyStore

logger = logging.getLogger(__name__)

TABS = ("sources", "guide", "slides", "quiz", "flashcards")


class Workspace:
    """A :class:`StudyStore` plus the view state that points into it.

    The store owns data; the workspace owns which study is open, which tab
    is showing, and the per-study processing state of generation calls.
    """

    def __init__(self, store: StudyStore | None = None) -> None:
        self.store = store or StudyStore()
        self.active_study_id: str | None = None
        self.active_tab: str = "sources"
        self._processing: dict[str, ProcessingState] = {}
        self._in_flight: set[str] = set()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def open_study(self, study_id: str | None, tab: str = "sources") -> None:
        if study_id is not None and self.store.get_study(study_id) is None:
            raise NotFoundError(f"Study {study_id} not found")
        if tab not in TABS:
            raise StudyError(f"Unknown tab: {tab}")
        self.active_study_id = study_id
        self.active_tab = tab

    def view(self) -> dict:
        return {"active_study_id": self.active_study_id, "active_tab": self.active_tab}

    def _forget(self, study_ids: set[str]) -> None:
        for sid in study_ids:
            self._processing.pop(sid, None)
        if self.active_study_id in study_ids:
            self.active_study_id = None

    # ------------------------------------------------------------------
    # Deletion with view-state cleanup
    # ------------------------------------------------------------------

    def delete_folder(self, folder_id: str) -> tuple[set[str], set[str]]:
        removed_folders, removed_studies = self.store.delete_folder(folder_id)
        self._forget(removed_studies)
        return removed_folders, removed_studies

    def delete_study(self, study_id: str) -> bool:
        if not self.store.delete_study(study_id):
            return False
        self._forget({study_id})
        return True

    # ------------------------------------------------------------------
    # Study creation flows
    # ------------------------------------------------------------------

    def start_study(
        self, folder_id: str, title: str, mode: StudyMode = StudyMode.NORMAL
    ) -> StudySession:
        if self.store.get_folder(folder_id) is None:
            raise NotFoundError(f"Folder {folder_id} not found")
        study = self.store.create_study(folder_id, title, mode)
        self.open_study(study.id, "sources")
        return study

    def quick_start(
        self, source: StudySource, mode: StudyMode = StudyMode.NORMAL
    ) -> StudySession:
        """Drop a single source into a fresh study in the quick-studies folder."""
        label = "Pareto 80/20 study" if mode == StudyMode.SURVIVAL else "Quick study"
        title = f"{label} - {datetime.now().strftime('%H:%M:%S')}"
        study = self.start_study(QUICK_FOLDER_ID, title, mode)
        self.store.add_source(study.id, source)
        return study

    def folder_exam(self, folder_id: str) -> StudySession:
        """Create a NORMAL study holding the merged guide of a folder."""
        guide = build_folder_exam_guide(self.store, folder_id)
        study = self.store.create_study(folder_id, guide.subject, StudyMode.NORMAL)
        self.store.update_guide(study.id, guide)
        self.open_study(study.id, "quiz")
        return study

    # ------------------------------------------------------------------
    # Generation bookkeeping
    # ------------------------------------------------------------------

    def processing(self, study_id: str) -> ProcessingState:
        return self._processing.get(study_id, ProcessingState())

    def require_study(self, study_id: str) -> StudySession:
        study = self.store.get_study(study_id)
        if study is None:
            raise NotFoundError(f"Study {study_id} not found")
        return study

    @asynccontextmanager
    async def generation(self, study_id: str, step: str) -> AsyncIterator[ProcessingState]:
        """Hold the study's single generation slot for the duration of a call.

        A failure is recorded on the study's processing state and re-raised.
        """
        self.require_study(study_id)
        if study_id in self._in_flight:
            raise GenerationInProgressError(
                f"A generation is already running for study {study_id}."
            )
        self._in_flight.add(study_id)
        state = ProcessingState(is_loading=True, error=None, step=step)
        self._processing[study_id] = state
        try:
            yield state
        except Exception as e:
            logger.warning("Generation step %r failed for study %s: %s", step, study_id, e)
            state.error = e.message if isinstance(e, StudyError) else str(e)
            state.step = "idle"
            raise
        else:
            state.step = "complete"
        finally:
            self._in_flight.discard(study_id)
            state.is_loading = False
