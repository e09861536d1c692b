# review_evidence/config.py
import os
from dotenv import load_dotenv


def _int_env(name: str, default: int = 0) -> int:
    return int(os.getenv(name, str(default)) or default)


def load_settings() -> dict:
    load_dotenv()
    return {
        "DATABASE_URL": os.getenv(
            "DATABASE_URL", "postgresql://localhost:5432/review_evidence"
        ),
        "OPENAI_API_KEY": os.getenv("OPENAI_API_KEY"),
        "OPENAI_BASE_URL": os.getenv("OPENAI_BASE_URL"),
        "OPENAI_TIMEOUT": float(os.getenv("OPENAI_TIMEOUT", "0") or 0),
        "OPENAI_MAX_RETRIES": _int_env("OPENAI_MAX_RETRIES"),
        "OPENAI_EMBEDDING_MODEL": os.getenv("OPENAI_EMBEDDING_MODEL"),
        "OPENAI_EMBEDDING_DIM": _int_env("OPENAI_EMBEDDING_DIM"),
        "REVIEW_EVIDENCE_CONFIG": os.getenv("REVIEW_EVIDENCE_CONFIG"),
    }
