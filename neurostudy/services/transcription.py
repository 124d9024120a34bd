from neurostudy.clients import GroqClient


def format_timestamp(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours:d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_segments(segments: list[dict]) -> str:
    """Render transcript segments as ``[mm:ss-mm:ss] text`` lines for the LLM."""
    lines = []
    for seg in segments:
        t = f"[{format_timestamp(seg['start'])}-{format_timestamp(seg['end'])}]"
        lines.append(f"{t} {seg['text']}")
    return "\n".join(lines)


class TranscriptionService:
    """Turn audio/video sources into timestamped transcript text.

    Transcription runs on Groq's hosted Whisper, so nothing is loaded locally.
    """

    def __init__(self, groq: GroqClient | None = None) -> None:
        self.groq = groq or GroqClient()

    async def transcribe(self, filename: str, data: bytes) -> str:
        segments = await self.groq.transcribe(filename, data)
        return format_segments(segments)
