import os
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Settings(BaseModel):
    """Application settings loaded from environment: LLM provider and models, Supabase credentials and buckets, Marp command, working directories, job/progress limits.
    Why available: Single source of configuration so the API, the job pipeline and the collaborators agree on limits and endpoints."""
    # Content generation
    llm_provider: str = os.getenv("LLM_PROVIDER", "openai")
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    chat_model: str = os.getenv("CHAT_MODEL", "gpt-4o-mini")
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash-latest")
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.7"))
    llm_max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "4000"))
    prompt_version: str = os.getenv("PROMPT_VERSION", "v1")

    # Supabase (storage + job records + identity)
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_service_key: str = os.getenv("SUPABASE_SERVICE_KEY", "")
    supabase_jwt_secret: str = os.getenv("SUPABASE_JWT_SECRET", "")
    deck_table: str = os.getenv("DECK_TABLE", "pitch_decks")
    deck_bucket: str = os.getenv("DECK_BUCKET", "pitch-decks")
    image_bucket: str = os.getenv("IMAGE_BUCKET", "user-media")

    # Rendering
    marp_command: str = os.getenv("MARP_COMMAND", "npx @marp-team/marp-cli")

    # Local directories
    work_dir: str = os.getenv("WORK_DIR", os.path.join(os.getcwd(), "data", "work"))
    upload_dir: str = os.getenv("UPLOAD_DIR", os.path.join(os.getcwd(), "data", "uploads"))
    local_storage_dir: str = os.getenv("LOCAL_STORAGE_DIR", os.path.join(os.getcwd(), "data", "files"))
    keep_work_files: bool = _env_bool("KEEP_WORK_FILES")

    # Job / progress limits (seconds unless noted)
    progress_capacity: int = int(os.getenv("PROGRESS_CAPACITY", "10"))  # events buffered per job
    progress_send_timeout_seconds: float = float(os.getenv("PROGRESS_SEND_TIMEOUT_SECONDS", "5"))
    sse_keepalive_seconds: float = float(os.getenv("SSE_KEEPALIVE_SECONDS", "15"))
    job_timeout_seconds: float = float(os.getenv("JOB_TIMEOUT_SECONDS", "600"))
    llm_timeout_seconds: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "180"))
    render_timeout_seconds: float = float(os.getenv("RENDER_TIMEOUT_SECONDS", "180"))
    http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
    max_image_kb: int = int(os.getenv("MAX_IMAGE_KB", "10240"))  # 10 MB max upload

    # API
    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "20"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    cors_origin: str = os.getenv("CORS_ORIGIN", "*")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @field_validator(
        "progress_capacity",
        "progress_send_timeout_seconds",
        "sse_keepalive_seconds",
        "job_timeout_seconds",
        "llm_timeout_seconds",
        "render_timeout_seconds",
        "http_timeout_seconds",
        "max_image_kb",
        "rate_limit_requests",
        "rate_limit_window_seconds",
    )
    @classmethod
    def must_be_positive(cls, v):
        """Ensure limits and timeouts are positive. Prevents invalid config from env."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("llm_provider")
    @classmethod
    def known_provider(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in ("openai", "gemini"):
            raise ValueError("llm_provider must be 'openai' or 'gemini'")
        return v

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)


settings = Settings()
