from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Groq
    groq_api_key: str = ""
    default_model: str = "llama-3.3-70b-versatile"
    chat_model: str = "llama-3.3-70b-versatile"
    vision_model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    transcription_model: str = "whisper-large-v3-turbo"
    guide_temperature: float = 0.4
    chat_temperature: float = 0.7

    # Bibliographic lookup
    crossref_base_url: str = "https://api.crossref.org/works"
    crossref_timeout_seconds: float = 10.0

    # Generation
    prompt_context_limit: int = 30000
    chat_history_limit: int = 10
    exam_note_max_chars: int = 200

    # Folders
    default_folder_name: str = "My Studies"
    quick_folder_name: str = "⚡ Quick Studies"

    # Logging
    log_level: str = "INFO"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
