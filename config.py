from dataclasses import dataclass
from pathlib import Path
import os

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")


@dataclass(frozen=True)
class ModelConfig:
    """Configuration for a specific LLM model."""
    name: str
    max_output_tokens: int
    context_tokens: int = 128_000


@dataclass(frozen=True)
class ExtractionConfig:
    """Configuration for the study extraction pipeline."""

    # Model settings
    model: ModelConfig

    # Document size thresholds (characters)
    large_document_threshold: int = 50_000
    max_concise_chars: int = 80_000
    truncation_marker: str = "\n\n[Document truncated for processing...]"
    header_scan_chars: int = 3_000
    analysis_scan_chars: int = 10_000

    # Segmentation
    min_segment_chars: int = 100

    # Concurrency
    segment_batch_size: int = 3

    # Output ceilings per prompt variant
    full_max_output_tokens: int = 16_000
    concise_max_output_tokens: int = 16_000
    lesson_max_output_tokens: int = 8_000
    header_max_output_tokens: int = 500
    analysis_max_output_tokens: int = 4_000

    # Oracle calls
    oracle_timeout_seconds: float = 300.0

    # Clarification
    max_clarification_rounds: int = 3

    # Fallbacks
    default_study_title: str = "Bible Study"

    analysis_enabled: bool = True

    # Debug
    debug_enabled: bool = False
    debug_dir: str = "debug_output"

    def output_ceiling(self, requested: int) -> int:
        """Clamp a per-call output ceiling to what the model can produce."""
        return min(requested, self.model.max_output_tokens)


# Predefined model configurations
GPT5_MINI = ModelConfig(
    name="gpt-5-mini",
    context_tokens=400_000,
    max_output_tokens=128_000,
)

GPT5 = ModelConfig(
    name="gpt-5",
    context_tokens=400_000,
    max_output_tokens=128_000,
)

GPT4O = ModelConfig(
    name="gpt-4o-2024-08-06",
    context_tokens=128_000,
    max_output_tokens=16_384,
)

GPT41_MINI = ModelConfig(
    name="gpt-4.1-mini",
    context_tokens=1_000_000,
    max_output_tokens=32_768,
)


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def get_model_by_name(model_name: str) -> ModelConfig:
    """Get model config by name; unknown names keep a conservative ceiling."""
    model_map = {
        "gpt-5-mini": GPT5_MINI,
        "gpt-5": GPT5,
        "gpt-4o-2024-08-06": GPT4O,
        "gpt-4o": GPT4O,
        "gpt-4.1-mini": GPT41_MINI,
    }
    return model_map.get(model_name, ModelConfig(name=model_name, max_output_tokens=16_000))


def get_default_config() -> ExtractionConfig:
    """Get default configuration based on environment."""
    model = get_model_by_name(os.getenv("OPENAI_MODEL", "gpt-4o"))

    return ExtractionConfig(
        model=model,
        oracle_timeout_seconds=float(os.getenv("ORACLE_TIMEOUT_SECONDS", "300")),
        max_clarification_rounds=int(os.getenv("MAX_CLARIFICATION_ROUNDS", "3")),
        analysis_enabled=_env_flag("STUDY_ANALYSIS_ENABLED", "true"),
        debug_enabled=_env_flag("EXTRACTOR_DEBUG"),
    )


# Global default (can be overridden)
DEFAULT_CONFIG = get_default_config()
