import asyncio
import base64
import json
import logging

from neurostudy.clients import CrossRefClient, GroqClient
from neurostudy.config import settings
from neurostudy.errors import GenerationError
from neurostudy.models import (
    ChatMessage,
    Flashcard,
    QuizQuestion,
    Slide,
    StudyGuide,
    StudyMode,
    new_id,
)
from neurostudy.services.sources import (
    DOI_RE,
    DocumentExtractor,
    decode_content,
    looks_like_doi,
    looks_like_url,
)
from neurostudy.services.transcription import TranscriptionService

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# JSON Schemas. Groq strict mode requires additionalProperties: false
# everywhere and all properties in "required".
# ---------------------------------------------------------------------------

STUDY_GUIDE_SCHEMA = {
    "type": "object",
    "properties": {
        "subject": {"type": "string"},
        "overview": {"type": "string"},
        "core_concepts": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "concept": {"type": "string"},
                    "definition": {"type": "string"},
                },
                "required": ["concept", "definition"],
                "additionalProperties": False,
            },
        },
        "checkpoints": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "mission": {"type": "string"},
                    "timestamp": {"type": "string"},
                    "look_for": {"type": "string"},
                    "note_exactly": {"type": "string"},
                    "draw_exactly": {"type": "string"},
                    "draw_label": {
                        "type": "string",
                        "enum": ["essential", "suggestion", "none"],
                    },
                    "question": {"type": "string"},
                },
                "required": [
                    "mission",
                    "timestamp",
                    "look_for",
                    "note_exactly",
                    "draw_exactly",
                    "draw_label",
                    "question",
                ],
                "additionalProperties": False,
            },
        },
    },
    "required": ["subject", "overview", "core_concepts", "checkpoints"],
    "additionalProperties": False,
}

SLIDES_SCHEMA = {
    "type": "object",
    "properties": {
        "slides": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "bullets": {"type": "array", "items": {"type": "string"}},
                    "speaker_notes": {"type": "string"},
                },
                "required": ["title", "bullets", "speaker_notes"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["slides"],
    "additionalProperties": False,
}

QUIZ_SCHEMA = {
    "type": "object",
    "properties": {
        "questions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": ["multiple_choice", "open"]},
                    "difficulty": {"type": "string", "enum": ["easy", "medium", "hard"]},
                    "question": {"type": "string"},
                    "options": {"type": "array", "items": {"type": "string"}},
                    "correct_answer": {"type": "string"},
                    "explanation": {"type": "string"},
                },
                "required": [
                    "type",
                    "difficulty",
                    "question",
                    "options",
                    "correct_answer",
                    "explanation",
                ],
                "additionalProperties": False,
            },
        },
    },
    "required": ["questions"],
    "additionalProperties": False,
}

FLASHCARDS_SCHEMA = {
    "type": "object",
    "properties": {
        "flashcards": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "front": {"type": "string"},
                    "back": {"type": "string"},
                },
                "required": ["front", "back"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["flashcards"],
    "additionalProperties": False,
}

DIAGRAM_SCHEMA = {
    "type": "object",
    "properties": {
        "svg": {"type": "string"},
    },
    "required": ["svg"],
    "additionalProperties": False,
}


# ---------------------------------------------------------------------------
# Prompt fragments
# ---------------------------------------------------------------------------

MODE_INSTRUCTIONS = {
    StudyMode.TURBO: (
        "MODE: TURBO (maximum detail). Break the content into SMALL, frequent "
        "checkpoints. Be extremely specific in note_exactly. Aim to capture "
        "100% of the material."
    ),
    StudyMode.NORMAL: (
        "MODE: NORMAL (balanced). Medium-sized blocks, neither too fragmented "
        "nor too shallow. Standard organisation for a study routine."
    ),
    StudyMode.SURVIVAL: (
        "MODE: SURVIVAL (essentials only). Create FEW checkpoints covering large "
        "blocks. Focus ONLY on the absolute Pareto 80/20 and ignore minor "
        "details. Keep syntheses short and direct."
    ),
}

QUIZ_DEFAULT_COUNTS = {
    StudyMode.SURVIVAL: 3,
    StudyMode.NORMAL: 6,
    StudyMode.TURBO: 10,
}

QUIZ_DISTRIBUTION = {
    StudyMode.SURVIVAL: "Mostly easy and medium questions. Focus on the essentials.",
    StudyMode.NORMAL: "Balanced: 30% easy, 40% medium, 30% hard.",
    StudyMode.TURBO: "Challenging: include more hard questions of critical analysis.",
}

REFINE_PROMPTS = {
    "simplify": 'Explain like I am five: "{text}". Be brief: at most 2 sentences, no introduction.',
    "example": 'Give ONE short real-world example of: "{text}". Go straight to the example, at most 2 sentences.',
    "mnemonic": 'Create ONE creative mnemonic for: "{text}". Only the mnemonic and a short explanation.',
}


def _content_instructions(mime_type: str, is_binary: bool) -> str:
    if is_binary and (mime_type.startswith("video/") or mime_type.startswith("audio/")):
        return (
            "The content is a VIDEO/AUDIO transcript. Use time ranges "
            "(e.g. 00:00-05:00) as checkpoint timestamps."
        )
    if is_binary and mime_type.startswith("image/"):
        return (
            "The content is an IMAGE (a notebook photo or a book page). Transcribe "
            "the visible printed and handwritten text. Use 'Page' or 'Visual section' "
            "as the timestamp."
        )
    return (
        "The content is TEXT (PDF/article/book/website). Use sections, pages or "
        "topics in the timestamp field to locate the student."
    )


def _guide_system_prompt(mode: StudyMode, mime_type: str, is_binary: bool) -> str:
    return (
        "You are an expert learning architect grounded in neuroscience. Turn the "
        "provided content into an active study guide.\n\n"
        f"{MODE_INSTRUCTIONS[mode]}\n"
        f"{_content_instructions(mime_type, is_binary)}\n\n"
        "Output fields:\n"
        "1. subject: title of the lesson/topic.\n"
        "2. overview: 2-3 line advance organiser.\n"
        "3. core_concepts: the essential concepts that carry 80% of the learning. "
        f"Use as many as the content density and mode ({mode.value}) require.\n"
        "4. checkpoints, split according to the mode:\n"
        "   - mission: goal of the segment.\n"
        "   - timestamp: location (time or section).\n"
        "   - look_for: what to look for specifically.\n"
        "   - note_exactly: the main text to write down by hand.\n"
        "   - draw_exactly: instruction for a diagram, or \"\" if none is needed.\n"
        "   - draw_label: 'essential' if the concept depends on the visual, "
        "'suggestion' if it is an optional aid, 'none' if there is no drawing.\n"
        "   - question: an active-recall question."
    )


def _guide_context(guide: StudyGuide, *, with_overview: bool = True) -> str:
    """Compact JSON of a guide for downstream prompts, capped in length."""
    context: dict = {"subject": guide.subject}
    if with_overview:
        context["overview"] = guide.overview
    context["concepts"] = [
        {"concept": c.concept, "definition": c.definition} for c in guide.core_concepts
    ]
    context["key_points"] = [
        {"mission": cp.mission, "note": cp.note_exactly} for cp in guide.checkpoints
    ]
    return json.dumps(context, ensure_ascii=False)[: settings.prompt_context_limit]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class GenerationService:
    """Generate study guides and derived study material via the Groq API."""

    def __init__(
        self,
        groq: GroqClient | None = None,
        crossref: CrossRefClient | None = None,
    ) -> None:
        self.groq = groq or GroqClient()
        self.crossref = crossref or CrossRefClient()
        self.transcription = TranscriptionService(self.groq)

    # ------------------------------------------------------------------
    # Study guide
    # ------------------------------------------------------------------

    async def generate_guide(
        self,
        content: str,
        mime_type: str | None,
        mode: StudyMode = StudyMode.NORMAL,
        is_binary: bool = False,
        filename: str = "source",
    ) -> StudyGuide:
        """Generate a structured study guide from one source.

        Binary content is base64.  Documents are converted to text locally,
        audio/video is transcribed first, images go to the vision model.
        DOIs are enriched with CrossRef metadata; bare URLs are expanded from
        the model's own knowledge of the page.
        """
        mime_type = mime_type or "text/plain"
        logger.info("Generating study guide (mode=%s, mime=%s)", mode.value, mime_type)
        messages = [
            {"role": "system", "content": _guide_system_prompt(mode, mime_type, is_binary)},
        ]
        model = None

        if is_binary and mime_type.startswith("image/"):
            model = settings.vision_model
            messages.append({
                "role": "user",
                "content": [
                    {
                        "type": "text",
                        "text": (
                            "This is an image of study notes or a book page. Transcribe "
                            "the handwritten or printed text and build the study guide "
                            "from it. Describe any diagrams in draw_exactly."
                        ),
                    },
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{mime_type};base64,{content}"},
                    },
                ],
            })
        elif is_binary:
            messages.append({
                "role": "user",
                "content": await self._binary_to_prompt(content, mime_type, filename),
            })
        elif looks_like_doi(content):
            messages.append({"role": "user", "content": await self._doi_prompt(content, mode)})
        elif looks_like_url(content):
            identifier = content.strip()
            messages.append({
                "role": "user",
                "content": (
                    f'The user provided a website link: "{identifier}". Do NOT analyse '
                    "the link text literally. Use your own knowledge of this site or page "
                    "to build the guide. If you cannot access it, infer the topic from the "
                    "link and build a complete guide about the likely subject. "
                    f"Mode: {mode.value}."
                ),
            })
        else:
            messages.append({"role": "user", "content": content[: settings.prompt_context_limit]})

        data = await self.groq.chat_json(
            messages,
            STUDY_GUIDE_SCHEMA,
            schema_name="study_guide",
            model=model,
            temperature=settings.guide_temperature,
        )
        try:
            return StudyGuide.from_dict(data)
        except (KeyError, TypeError) as e:
            raise GenerationError(f"Study guide response is missing fields: {e}") from e

    async def _binary_to_prompt(self, content: str, mime_type: str, filename: str) -> str:
        data = decode_content(content)
        if mime_type.startswith("video/") or mime_type.startswith("audio/"):
            transcript = await self.transcription.transcribe(filename, data)
            return (
                "Analyse this video/audio transcript and build the guide.\n\n"
                f"{transcript[: settings.prompt_context_limit]}"
            )
        # CPU-bound parsing; offload to thread pool
        text = await asyncio.to_thread(DocumentExtractor.extract_text, data, mime_type)
        return (
            "Analyse this document and build the guide.\n\n"
            f"{text[: settings.prompt_context_limit]}"
        )

    async def _doi_prompt(self, content: str, mode: StudyMode) -> str:
        identifier = content.strip()
        match = DOI_RE.search(identifier)
        metadata = await self.crossref.lookup(match.group(1) if match else identifier)
        if metadata and metadata["title"]:
            return (
                f'The user provided the DOI of a scientific paper: "{identifier}".\n'
                "We retrieved the following REAL metadata for it:\n"
                f'TITLE: "{metadata["title"]}"\n'
                f'ABSTRACT: "{metadata["abstract"]}"\n\n'
                "Use this information to build the study guide. If the abstract is "
                "short, expand with your own knowledge but stay faithful to the topic "
                f"of the title. Mode: {mode.value}."
            )
        logger.info("No CrossRef metadata for %s; prompting from the DOI alone", identifier)
        return (
            f'The user provided a DOI: "{identifier}". External metadata could not be '
            "retrieved. Use what you know about this paper to build the guide. If you "
            "do not know this DOI, build a guide about the topic its structure most "
            f"likely suggests. Mode: {mode.value}."
        )

    # ------------------------------------------------------------------
    # Derived artifacts
    # ------------------------------------------------------------------

    async def generate_slides(self, guide: StudyGuide) -> list[Slide]:
        """Generate a 5-8 slide educational deck from a guide."""
        messages = [
            {
                "role": "system",
                "content": (
                    "You are an instructional designer. Create 5-8 educational slides "
                    "from the study guide. Each slide has a title, short bullets and "
                    "speaker notes."
                ),
            },
            {"role": "user", "content": f"Study guide:\n{_guide_context(guide)}"},
        ]
        result = await self.groq.chat_json(messages, SLIDES_SCHEMA, schema_name="slides")
        return [
            Slide(title=s["title"], bullets=list(s["bullets"]), speaker_notes=s["speaker_notes"])
            for s in result["slides"]
        ]

    async def generate_quiz(
        self,
        guide: StudyGuide,
        mode: StudyMode = StudyMode.NORMAL,
        quantity: int | None = None,
        difficulty: str | None = None,
    ) -> list[QuizQuestion]:
        """Generate a review quiz mixing multiple-choice and open questions.

        Without an explicit *quantity* the count follows the mode.  A fixed
        *difficulty* other than ``"mixed"`` applies to every question.
        """
        count = quantity or QUIZ_DEFAULT_COUNTS[mode]
        if difficulty and difficulty != "mixed":
            difficulty_rules = f"FIXED DIFFICULTY: every question must be {difficulty.upper()}."
        else:
            difficulty_rules = (
                "Difficulty levels: EASY = direct recall and literal definitions; "
                "MEDIUM = comprehension and simple application; HARD = analysis, "
                "comparison and integration of ideas.\n"
                f"Distribution for mode {mode.value}: {QUIZ_DISTRIBUTION[mode]}"
            )

        messages = [
            {
                "role": "system",
                "content": (
                    "You are an expert quiz writer. Mix multiple_choice and open "
                    "questions. For multiple_choice give 4 options and set "
                    "correct_answer to the index of the right option as a string "
                    "(\"0\"-\"3\"). For open questions leave options empty and set "
                    "correct_answer to the expected answer text."
                ),
            },
            {
                "role": "user",
                "content": (
                    f"{difficulty_rules}\n\n"
                    f"Study context:\n{_guide_context(guide)}\n\n"
                    f"Generate exactly {count} questions."
                ),
            },
        ]
        result = await self.groq.chat_json(messages, QUIZ_SCHEMA, schema_name="quiz")
        return [
            QuizQuestion(
                id=new_id(),
                type=q["type"],
                difficulty=q["difficulty"],
                question=q["question"],
                options=list(q.get("options") or []),
                correct_answer=q["correct_answer"],
                explanation=q["explanation"],
            )
            for q in result["questions"]
        ]

    async def generate_flashcards(self, guide: StudyGuide) -> list[Flashcard]:
        """Generate 10-15 Anki-style flashcards."""
        messages = [
            {
                "role": "system",
                "content": (
                    "Create 10-15 Anki-style flashcards. Front: a question or term. "
                    "Back: a short, direct answer or definition. Focus on key concepts "
                    "and important facts."
                ),
            },
            {
                "role": "user",
                "content": f"Study context:\n{_guide_context(guide, with_overview=False)}",
            },
        ]
        result = await self.groq.chat_json(
            messages, FLASHCARDS_SCHEMA, schema_name="flashcards"
        )
        return [
            Flashcard(id=new_id(), front=c["front"], back=c["back"])
            for c in result["flashcards"]
        ]

    # ------------------------------------------------------------------
    # Auxiliary
    # ------------------------------------------------------------------

    async def refine(self, text: str, task: str) -> str:
        """Simplify, exemplify or build a mnemonic for one concept."""
        if task not in REFINE_PROMPTS:
            raise ValueError(f"Unknown refine task: {task}")
        messages = [{"role": "user", "content": REFINE_PROMPTS[task].format(text=text)}]
        return (await self.groq.chat(messages)).strip()

    async def generate_diagram(self, description: str) -> str:
        """Return an SVG diagram of *description* as a ``data:`` URI."""
        messages = [
            {
                "role": "system",
                "content": (
                    "You draw clear educational diagrams as standalone SVG documents: "
                    "white background, clean academic style, readable labels, no "
                    "external resources or scripts."
                ),
            },
            {"role": "user", "content": f"Diagram to draw: {description}"},
        ]
        result = await self.groq.chat_json(messages, DIAGRAM_SCHEMA, schema_name="diagram")
        svg = result["svg"].strip()
        start = svg.find("<svg")
        if start == -1 or "</svg>" not in svg:
            raise GenerationError("The generation service did not return an SVG image.")
        svg = svg[start:]
        encoded = base64.b64encode(svg.encode("utf-8")).decode("ascii")
        return f"data:image/svg+xml;base64,{encoded}"

    async def chat(
        self,
        history: list[ChatMessage],
        message: str,
        guide: StudyGuide | None = None,
    ) -> str:
        """Socratic tutor reply, grounded in the open guide when there is one."""
        system = "You are a Socratic tutor. Help the student understand the content."
        if guide is not None:
            missions = ", ".join(cp.mission for cp in guide.checkpoints)
            system += (
                f'\nSTUDY CONTEXT: "{guide.subject}"\n'
                f'Overview: "{guide.overview}"\n'
                f"Checkpoints: {missions}"
            )
        system += "\nBe didactic and brief."

        messages = [{"role": "system", "content": system}]
        for msg in history[-settings.chat_history_limit:]:
            role = "assistant" if msg.role == "model" else "user"
            messages.append({"role": role, "content": msg.text})
        messages.append({"role": "user", "content": message})

        return await self.groq.chat(
            messages, model=settings.chat_model, temperature=settings.chat_temperature
        )
