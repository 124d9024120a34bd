import asyncio
import base64
import io

import httpx
import pytest
from pptx import Presentation

from neurostudy.config import settings
from neurostudy.dependencies import get_generation_service
from neurostudy.errors import GenerationError
from neurostudy.main import app
from neurostudy.models import DEFAULT_FOLDER_ID
from neurostudy.services.export import guide_to_markdown
from neurostudy.workspace import Workspace

from tests.conftest import make_guide


def _create_study(client, title="Cells", folder_id="default", mode="NORMAL") -> dict:
    resp = client.post("/api/studies", json={"title": title, "folder_id": folder_id, "mode": mode})
    assert resp.status_code == 200
    return resp.json()


def _study_with_guide(client, title="Cells") -> str:
    study = _create_study(client, title)
    client.post(f"/api/studies/{study['id']}/sources", json={"content": "Cells are small."})
    resp = client.post(f"/api/studies/{study['id']}/guide")
    assert resp.status_code == 200
    return study["id"]


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


# ------------------------------------------------------------------
# Folders
# ------------------------------------------------------------------


def test_reserved_folders_exist_at_startup(client):
    ids = {f["id"] for f in client.get("/api/folders").json()}
    assert {"default", "quick-studies"} <= ids


def test_folder_crud_and_tree(client):
    parent = client.post("/api/folders", json={"name": "Biology"}).json()
    child = client.post("/api/folders", json={"name": "Cells", "parent_id": parent["id"]}).json()
    assert child["parent_id"] == parent["id"]

    renamed = client.patch(f"/api/folders/{child['id']}", json={"name": "Cell Biology"})
    assert renamed.json()["name"] == "Cell Biology"

    detail = client.get(f"/api/folders/{child['id']}").json()
    assert [f["name"] for f in detail["path"]] == ["Biology", "Cell Biology"]

    tree = client.get("/api/folders/tree").json()
    bio = next(node for node in tree if node["id"] == parent["id"])
    assert [c["id"] for c in bio["children"]] == [child["id"]]


def test_create_folder_validation(client):
    assert client.post("/api/folders", json={"name": "  "}).status_code == 400
    assert client.post("/api/folders", json={"name": "X", "parent_id": "nope"}).status_code == 404


def test_reserved_folders_are_protected(client):
    assert client.delete("/api/folders/default").status_code == 403
    assert client.delete("/api/folders/quick-studies").status_code == 403
    assert client.patch("/api/folders/quick-studies", json={"name": "Mine"}).status_code == 403
    assert client.post("/api/folders/quick-studies/move", json={"parent_id": None}).status_code == 403

    # The default folder may still be renamed
    assert client.patch("/api/folders/default", json={"name": "Home"}).status_code == 200


def test_move_folder_into_descendant_is_rejected(client):
    a = client.post("/api/folders", json={"name": "A"}).json()
    b = client.post("/api/folders", json={"name": "B", "parent_id": a["id"]}).json()

    resp = client.post(f"/api/folders/{a['id']}/move", json={"parent_id": b["id"]})
    assert resp.status_code == 409
    assert client.post(f"/api/folders/{a['id']}/move", json={"parent_id": a["id"]}).status_code == 409

    resp = client.post(f"/api/folders/{b['id']}/move", json={"parent_id": None})
    assert resp.status_code == 200
    assert resp.json()["parent_id"] is None


def test_delete_folder_cascades(client):
    parent = client.post("/api/folders", json={"name": "P"}).json()
    child = client.post("/api/folders", json={"name": "C", "parent_id": parent["id"]}).json()
    study = _create_study(client, "Deep", folder_id=child["id"])

    resp = client.delete(f"/api/folders/{parent['id']}")

    assert resp.status_code == 200
    assert resp.json() == {
        "deleted_folders": sorted([parent["id"], child["id"]]),
        "deleted_studies": [study["id"]],
    }
    assert client.get(f"/api/studies/{study['id']}").status_code == 404
    assert client.get("/api/view").json()["active_study_id"] is None


# ------------------------------------------------------------------
# Studies and sources
# ------------------------------------------------------------------


def test_study_lifecycle(client):
    study = _create_study(client, "Intro", mode="TURBO")
    assert study["mode"] == "TURBO"
    assert client.get("/api/view").json() == {"active_study_id": study["id"], "active_tab": "sources"}

    resp = client.patch(f"/api/studies/{study['id']}", json={"title": "Intro v2", "mode": "SURVIVAL"})
    assert resp.json()["title"] == "Intro v2"
    assert resp.json()["mode"] == "SURVIVAL"

    folder = client.post("/api/folders", json={"name": "Elsewhere"}).json()
    moved = client.post(f"/api/studies/{study['id']}/move", json={"folder_id": folder["id"]})
    assert moved.json()["folder_id"] == folder["id"]
    assert [s["id"] for s in client.get(f"/api/studies?folder_id={folder['id']}").json()] == [study["id"]]

    assert client.delete(f"/api/studies/{study['id']}").status_code == 200
    assert client.delete(f"/api/studies/{study['id']}").status_code == 404


def test_create_study_in_unknown_folder(client):
    resp = client.post("/api/studies", json={"title": "Lost", "folder_id": "nope"})
    assert resp.status_code == 404


def test_sources_add_list_and_remove(client):
    study = _create_study(client)
    added = client.post(
        f"/api/studies/{study['id']}/sources", json={"content": "10.1038/nature12373", "type": "DOI"}
    ).json()
    assert added["name"].startswith("DOI: ")

    detail = client.get(f"/api/studies/{study['id']}").json()
    assert "content" not in detail["sources"][0]
    full = client.get(f"/api/studies/{study['id']}?include_content=true").json()
    assert full["sources"][0]["content"] == "10.1038/nature12373"

    path = f"/api/studies/{study['id']}/sources/{added['source_id']}"
    assert client.delete(path).status_code == 200
    assert client.delete(path).status_code == 404


def test_binary_source_must_be_base64(client):
    study = _create_study(client)
    resp = client.post(
        f"/api/studies/{study['id']}/sources",
        json={"content": "not base64!!", "type": "PDF", "mime_type": "application/pdf"},
    )
    assert resp.status_code == 422


def test_upload_source(client):
    study = _create_study(client)
    resp = client.post(
        f"/api/studies/{study['id']}/sources/upload",
        files={"file": ("photo.png", b"\x89PNG-data", "image/png")},
    )
    assert resp.status_code == 200
    assert resp.json()["type"] == "IMAGE"
    full = client.get(f"/api/studies/{study['id']}?include_content=true").json()
    assert base64.b64decode(full["sources"][0]["content"]) == b"\x89PNG-data"


def test_quick_start_creates_study_in_quick_folder(client):
    resp = client.post("/api/quick-start", json={"content": "Osmosis notes", "mode": "SURVIVAL"})
    study = resp.json()
    assert study["folder_id"] == "quick-studies"
    assert study["title"].startswith("Pareto 80/20 study - ")
    assert len(study["sources"]) == 1


def test_quick_start_upload_defaults_to_survival(client):
    resp = client.post(
        "/api/quick-start/upload",
        files={"file": ("notes.txt", b"Some notes", "text/plain")},
    )
    assert resp.status_code == 200
    assert resp.json()["mode"] == "SURVIVAL"


# ------------------------------------------------------------------
# Generation
# ------------------------------------------------------------------


def test_generate_guide_requires_a_source(client, fake_service):
    study = _create_study(client)
    resp = client.post(f"/api/studies/{study['id']}/guide")
    assert resp.status_code == 400
    assert fake_service.calls == []


def test_generate_guide_uses_latest_source_and_opens_guide(client, fake_service):
    study = _create_study(client, mode="TURBO")
    client.post(f"/api/studies/{study['id']}/sources", json={"content": "old"})
    client.post(f"/api/studies/{study['id']}/sources", json={"content": "new"})

    resp = client.post(f"/api/studies/{study['id']}/guide")

    assert resp.status_code == 200
    assert resp.json()["guide"]["subject"] == "Guide for TURBO"
    assert fake_service.calls[-1][:2] == ("guide", "new")
    assert client.get("/api/view").json()["active_tab"] == "guide"
    assert client.get(f"/api/studies/{study['id']}/status").json()["is_loading"] is False


def test_regenerate_with_new_mode_keeps_tab(client, fake_service):
    study_id = _study_with_guide(client)
    client.put("/api/view", json={"active_study_id": study_id, "active_tab": "quiz"})

    resp = client.post(f"/api/studies/{study_id}/guide", json={"mode": "SURVIVAL"})

    assert resp.json()["mode"] == "SURVIVAL"
    assert resp.json()["guide"]["subject"] == "Guide for SURVIVAL"
    assert client.get("/api/view").json()["active_tab"] == "quiz"


def test_regenerate_without_source_keeps_mode(client, fake_service):
    study = _create_study(client, mode="NORMAL")

    resp = client.post(f"/api/studies/{study['id']}/guide", json={"mode": "SURVIVAL"})

    assert resp.status_code == 400
    assert client.get(f"/api/studies/{study['id']}").json()["mode"] == "NORMAL"
    assert fake_service.calls == []


def test_failed_regenerate_keeps_mode_and_guide(client, fake_service):
    study_id = _study_with_guide(client)
    fake_service.fail_with = GenerationError("model overloaded")

    resp = client.post(f"/api/studies/{study_id}/guide", json={"mode": "TURBO"})

    assert resp.status_code == 502
    study = client.get(f"/api/studies/{study_id}").json()
    assert study["mode"] == "NORMAL"
    assert study["guide"]["subject"] == "Guide for NORMAL"


def test_derived_artifacts_need_a_guide(client):
    study = _create_study(client)
    for artifact in ("slides", "quiz", "flashcards"):
        assert client.post(f"/api/studies/{study['id']}/{artifact}").status_code == 400


def test_generate_and_clear_artifacts(client, fake_service):
    study_id = _study_with_guide(client)

    slides = client.post(f"/api/studies/{study_id}/slides").json()["slides"]
    quiz = client.post(
        f"/api/studies/{study_id}/quiz", json={"quantity": 4, "difficulty": "hard"}
    ).json()["questions"]
    cards = client.post(f"/api/studies/{study_id}/flashcards").json()["flashcards"]

    assert slides[0]["title"] == "Intro"
    assert quiz[0]["options"][1] == "Mitochondria"
    assert cards[0]["front"] == "ATP?"
    assert fake_service.calls[-2][-2:] == (4, "hard")

    assert client.delete(f"/api/studies/{study_id}/quiz").status_code == 200
    assert client.get(f"/api/studies/{study_id}").json()["quiz"] is None
    assert client.delete(f"/api/studies/{study_id}/notes").status_code == 404


def test_quiz_quantity_is_validated(client):
    study_id = _study_with_guide(client)
    assert client.post(f"/api/studies/{study_id}/quiz", json={"quantity": 0}).status_code == 422


def test_update_checkpoint(client):
    study_id = _study_with_guide(client)

    resp = client.patch(
        f"/api/studies/{study_id}/guide/checkpoints/0",
        json={"note_exactly": "My own words", "completed": True},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["note_exactly"] == "My own words"
    assert body["completed"] is True
    assert body["completed_at"] is not None
    assert client.patch(
        f"/api/studies/{study_id}/guide/checkpoints/9", json={"completed": True}
    ).status_code == 404


def test_checkpoint_diagram_is_attached(client, fake_service):
    study_id = _study_with_guide(client)

    resp = client.post(f"/api/studies/{study_id}/guide/checkpoints/0/diagram")

    assert resp.json()["image_url"].startswith("data:image/svg+xml;base64,")
    assert fake_service.calls[-1] == ("diagram", "A labelled cell")
    guide = client.get(f"/api/studies/{study_id}").json()["guide"]
    assert guide["checkpoints"][0]["image_url"] == resp.json()["image_url"]


def test_generation_failure_is_reported(client, fake_service):
    study_id = _study_with_guide(client)
    fake_service.fail_with = GenerationError("model overloaded")

    resp = client.post(f"/api/studies/{study_id}/slides")

    assert resp.status_code == 502
    assert resp.json()["detail"] == "model overloaded"
    status = client.get(f"/api/studies/{study_id}/status").json()
    assert status["error"] == "model overloaded"
    assert status["is_loading"] is False
    assert client.get(f"/api/studies/{study_id}").json()["slides"] is None


def test_missing_credentials_return_503(client, monkeypatch):
    monkeypatch.setattr(settings, "groq_api_key", "")
    del app.dependency_overrides[get_generation_service]

    resp = client.post("/api/refine", json={"text": "ATP", "task": "simplify"})

    assert resp.status_code == 503


def test_refine_and_chat(client, fake_service):
    study_id = _study_with_guide(client)

    refined = client.post("/api/refine", json={"text": "ATP", "task": "mnemonic"}).json()
    assert refined == {"task": "mnemonic", "text": "mnemonic: ATP"}
    assert client.post("/api/refine", json={"text": "ATP", "task": "poem"}).status_code == 422

    reply = client.post(
        "/api/chat",
        json={
            "message": "Why ATP?",
            "history": [{"role": "user", "text": "hi"}, {"role": "model", "text": "hello"}],
            "study_id": study_id,
        },
    ).json()
    assert reply == {"role": "model", "text": "Think about energy."}
    assert fake_service.calls[-1] == ("chat", 2, "Why ATP?", "Guide for NORMAL")


# ------------------------------------------------------------------
# Exam
# ------------------------------------------------------------------


def test_folder_exam(client):
    folder = client.post("/api/folders", json={"name": "Biology"}).json()
    for title in ("Cells", "Genes"):
        study = _create_study(client, title, folder_id=folder["id"])
        client.post(f"/api/studies/{study['id']}/sources", json={"content": title})
        client.post(f"/api/studies/{study['id']}/guide")

    resp = client.post(f"/api/folders/{folder['id']}/exam")

    assert resp.status_code == 200
    exam = resp.json()["study"]
    assert exam["title"] == "Exam: Biology"
    assert exam["mode"] == "NORMAL"
    assert exam["guide"]["overview"] == "Unified exam covering 2 studies: Cells, Genes."
    assert resp.json()["view"] == {"active_study_id": exam["id"], "active_tab": "quiz"}


def test_folder_exam_without_guides(client):
    folder = client.post("/api/folders", json={"name": "Empty"}).json()
    _create_study(client, "No guide", folder_id=folder["id"])

    resp = client.post(f"/api/folders/{folder['id']}/exam")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "No generated guides in this folder."
    assert len(client.get(f"/api/studies?folder_id={folder['id']}").json()) == 1


# ------------------------------------------------------------------
# Export / import
# ------------------------------------------------------------------


def test_markdown_export_and_import(client):
    study_id = _study_with_guide(client)

    resp = client.get(f"/api/studies/{study_id}/export/markdown")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/markdown")
    assert 'filename="guide_for_normal_notes.md"' in resp.headers["content-disposition"]

    other = _create_study(client, "Imported")
    imported = client.post(
        f"/api/studies/{other['id']}/import/markdown", json={"markdown": resp.text}
    )
    assert imported.status_code == 200
    assert imported.json()["guide"]["subject"] == "Guide for NORMAL"

    bad = client.post(f"/api/studies/{other['id']}/import/markdown", json={"markdown": "nothing"})
    assert bad.status_code == 422


@pytest.mark.asyncio
async def test_markdown_import_is_refused_while_diagram_runs(fake_service):
    workspace = Workspace()
    app.state.workspace = workspace
    app.dependency_overrides[get_generation_service] = lambda: fake_service
    study = workspace.start_study(DEFAULT_FOLDER_ID, "Cells")
    workspace.store.update_guide(study.id, make_guide())
    started, release = asyncio.Event(), asyncio.Event()

    async def slow_diagram(description):
        started.set()
        await release.wait()
        return "data:image/svg+xml;base64,PHN2Zy8+"

    fake_service.generate_diagram = slow_diagram
    replacement = guide_to_markdown(make_guide("Replacement", checkpoints=2))

    try:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            diagram = asyncio.create_task(
                ac.post(f"/api/studies/{study.id}/guide/checkpoints/0/diagram")
            )
            await started.wait()
            resp = await ac.post(
                f"/api/studies/{study.id}/import/markdown", json={"markdown": replacement}
            )
            release.set()
            diagram_resp = await diagram
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 409
    assert diagram_resp.status_code == 200
    guide = workspace.store.get_study(study.id).guide
    assert guide.subject == "Cell Biology"
    assert guide.checkpoints[0].image_url == "data:image/svg+xml;base64,PHN2Zy8+"


def test_markdown_export_needs_guide(client):
    study = _create_study(client)
    assert client.get(f"/api/studies/{study['id']}/export/markdown").status_code == 400


def test_slides_export_as_pptx(client):
    study_id = _study_with_guide(client)
    assert client.get(f"/api/studies/{study_id}/export/slides.pptx").status_code == 400

    client.post(f"/api/studies/{study_id}/slides")
    resp = client.get(f"/api/studies/{study_id}/export/slides.pptx")

    assert resp.status_code == 200
    prs = Presentation(io.BytesIO(resp.content))
    assert len(prs.slides) == 2


# ------------------------------------------------------------------
# View
# ------------------------------------------------------------------


def test_view_state(client):
    study = _create_study(client)
    assert client.put("/api/view", json={"active_study_id": None}).json()["active_study_id"] is None

    resp = client.put("/api/view", json={"active_study_id": study["id"], "active_tab": "flashcards"})
    assert resp.json() == {"active_study_id": study["id"], "active_tab": "flashcards"}

    assert client.put("/api/view", json={"active_study_id": "nope"}).status_code == 404
    assert client.put("/api/view", json={"active_tab": "notes"}).status_code == 422


@pytest.mark.parametrize("path", ["/api/studies/nope", "/api/folders/nope"])
def test_unknown_ids_are_404(client, path):
    assert client.get(path).status_code == 404
