import io
import re
from datetime import date

from pptx import Presentation

from neurostudy.errors import MarkdownParseError
from neurostudy.models import Checkpoint, CoreConcept, Slide, StudyGuide

FOOTER = "*Generated by NeuroStudy*"

_FIELD_RE = re.compile(r"^- \*\*(?P<label>.+?)\*\*:(?: (?P<value>.*))?$")
_CHECKPOINT_RE = re.compile(r"^### \d+\. (?P<mission>.*?)(?: \[(?P<done>[ xX])\])?$")
_LOCATION_RE = re.compile(r"^> \*\*Location\*\*:(?: (?P<value>.*))?$")
_IMAGE_RE = re.compile(r"^!\[Diagram\]\((?P<url>.*)\)$")
_DRAW_LABEL_RE = re.compile(r"^Draw \((?P<label>essential|suggestion|none)\)$")

_CHECKPOINT_FIELDS = {
    "Look for": "look_for",
    "Note": "note_exactly",
    "Question": "question",
}


def export_filename(subject: str, suffix: str) -> str:
    """File name derived from the guide subject, e.g. ``cell_biology_notes.md``."""
    return f"{re.sub(r'[^a-z0-9]', '_', subject.lower())}{suffix}"


def _indent(text: str) -> str:
    # Continuation lines are indented two spaces so the parser can rejoin them.
    return text.replace("\n", "\n  ")


# ---------------------------------------------------------------------------
# Markdown export
# ---------------------------------------------------------------------------


def guide_to_markdown(guide: StudyGuide, today: date | None = None) -> str:
    """Render a guide as an Obsidian-friendly markdown note."""
    today = today or date.today()
    tag = re.sub(r"[^a-zA-Z0-9]", "", guide.subject).lower()
    done = sum(1 for cp in guide.checkpoints if cp.completed)

    lines = [
        "---",
        f"tags: [study, neurostudy, {tag}]",
        f"subject: {guide.subject}",
        f"date: {today.isoformat()}",
        f"progress: {done}/{len(guide.checkpoints)}",
        "---",
        "",
        f"# {guide.subject}",
        "",
        "## Overview",
        guide.overview,
        "",
        "## Core Concepts",
    ]
    lines += [f"- **{c.concept}**: {_indent(c.definition)}" for c in guide.core_concepts]
    lines += ["", "## Checkpoints", ""]

    for i, cp in enumerate(guide.checkpoints, start=1):
        mark = "x" if cp.completed else " "
        # The completion mark stays on the heading line; later lines continue it
        first, _, rest = cp.mission.partition("\n")
        heading = f"### {i}. {first} [{mark}]"
        if rest:
            heading += "\n  " + _indent(rest)
        lines += [
            heading,
            f"> **Location**: {_indent(cp.timestamp)}",
            "",
            f"- **Look for**: {_indent(cp.look_for)}",
            f"- **Note**: {_indent(cp.note_exactly)}",
        ]
        if cp.draw_exactly and cp.draw_label != "none":
            lines.append(f"- **Draw ({cp.draw_label})**: {_indent(cp.draw_exactly)}")
        if cp.image_url:
            lines.append(f"![Diagram]({cp.image_url})")
        lines += [f"- **Question**: {_indent(cp.question)}", ""]

    lines += ["---", FOOTER, ""]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Markdown import
# ---------------------------------------------------------------------------


def markdown_to_guide(text: str) -> StudyGuide:
    """Parse a note produced by :func:`guide_to_markdown` back into a guide.

    Completion marks, locations, draw instructions and diagram links are
    restored when present.  Raises :class:`MarkdownParseError` when no
    ``# subject`` heading is found.
    """
    lines = text.splitlines()
    start = 0
    if lines and lines[0].strip() == "---":
        for idx in range(1, len(lines)):
            if lines[idx].strip() == "---":
                start = idx + 1
                break

    subject: str | None = None
    section: str | None = None
    overview: list[str] = []
    concepts: list[CoreConcept] = []
    checkpoints: list[dict] = []
    # (dict or CoreConcept, attribute) receiving continuation lines
    target: tuple | None = None

    for line in lines[start:]:
        if line.startswith("# "):
            subject = line[2:].strip()
            section, target = None, None
            continue
        if line.startswith("## "):
            section, target = line[3:].strip().lower(), None
            continue

        if target is not None and line.startswith("  "):
            obj, attr = target
            if isinstance(obj, dict):
                obj[attr] += "\n" + line[2:]
            else:
                setattr(obj, attr, getattr(obj, attr) + "\n" + line[2:])
            continue
        target = None

        if section == "overview":
            overview.append(line)

        elif section == "core concepts":
            m = _FIELD_RE.match(line)
            if m:
                concept = CoreConcept(concept=m["label"], definition=m["value"] or "")
                concepts.append(concept)
                target = (concept, "definition")

        elif section == "checkpoints":
            m = _CHECKPOINT_RE.match(line)
            if m:
                checkpoints.append({
                    "mission": m["mission"],
                    "completed": (m["done"] or " ").lower() == "x",
                    "timestamp": "",
                    "look_for": "",
                    "note_exactly": "",
                    "question": "",
                    "draw_exactly": "",
                    "draw_label": "none",
                    "image_url": None,
                })
                target = (checkpoints[-1], "mission")
                continue
            if not checkpoints:
                continue
            current = checkpoints[-1]
            if m := _LOCATION_RE.match(line):
                current["timestamp"] = m["value"] or ""
                target = (current, "timestamp")
            elif m := _IMAGE_RE.match(line):
                current["image_url"] = m["url"]
            elif m := _FIELD_RE.match(line):
                label, value = m["label"], m["value"] or ""
                draw = _DRAW_LABEL_RE.match(label)
                if draw:
                    current["draw_exactly"] = value
                    current["draw_label"] = draw["label"]
                    target = (current, "draw_exactly")
                elif label in _CHECKPOINT_FIELDS:
                    attr = _CHECKPOINT_FIELDS[label]
                    current[attr] = value
                    target = (current, attr)

    if not subject:
        raise MarkdownParseError("Markdown note has no '# subject' heading.")

    return StudyGuide(
        subject=subject,
        overview="\n".join(overview).strip(),
        core_concepts=concepts,
        checkpoints=[Checkpoint(**cp) for cp in checkpoints],
    )


# ---------------------------------------------------------------------------
# Slide deck export
# ---------------------------------------------------------------------------


def slides_to_pptx(slides: list[Slide], title: str | None = None) -> bytes:
    """Build a .pptx deck with one title-and-content slide per entry."""
    prs = Presentation()
    if title:
        cover = prs.slides.add_slide(prs.slide_layouts[0])
        cover.shapes.title.text = title

    layout = prs.slide_layouts[1]  # Title and Content
    for s in slides:
        slide = prs.slides.add_slide(layout)
        slide.shapes.title.text = s.title
        body = slide.placeholders[1].text_frame
        body.clear()
        for i, bullet in enumerate(s.bullets):
            paragraph = body.paragraphs[0] if i == 0 else body.add_paragraph()
            paragraph.text = bullet
        slide.notes_slide.notes_text_frame.text = s.speaker_notes

    buf = io.BytesIO()
    prs.save(buf)
    return buf.getvalue()
