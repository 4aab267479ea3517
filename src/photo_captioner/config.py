"""Environment-driven defaults. A ``.env`` file in the working directory is honoured."""

import os

from dotenv import load_dotenv


load_dotenv()

DEFAULT_OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
DEFAULT_LMSTUDIO_BASE_URL = os.getenv("LM_STUDIO_BASE_URL", "http://localhost:1234/v1")
DEFAULT_OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/v1")
DEFAULT_MODEL_NAME = os.getenv("MODEL_NAME", "gpt-4o")
DEFAULT_TRIGGER = os.getenv("TRIGGER_WORD", "thr33")
DEFAULT_CONCURRENCY = int(os.getenv("CONCURRENCY", "10"))
DEFAULT_TEMPERATURE = float(os.getenv("TEMPERATURE", "0.2"))
DEFAULT_MAX_TOKENS = int(os.getenv("MAX_TOKENS", "600"))
DEFAULT_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "120"))

PROVIDER_URLS: dict[str, str] = {
    "openai": DEFAULT_OPENAI_BASE_URL,
    "lmstudio": DEFAULT_LMSTUDIO_BASE_URL,
    "ollama": DEFAULT_OLLAMA_BASE_URL,
}
PROVIDER_KEY_ENV: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "lmstudio": "LM_STUDIO_API_KEY",
    "ollama": "OLLAMA_API_KEY",
}
