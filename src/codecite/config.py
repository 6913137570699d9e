"""Configuration module for codecite.

Loads configuration from environment variables with sensible defaults.
Score weights and retrieval thresholds are tunable here rather than
hard-coded in the retrieval modules.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

ENV_PREFIX = "CODECITE_"

PROVIDERS = ("openai", "ollama", "hash")
CHAT_PROVIDERS = ("openai", "ollama")

DEFAULT_OLLAMA_URL = "http://localhost:11434/v1"

DEFAULT_EMBED_MODELS = {
    "openai": "text-embedding-3-small",
    "ollama": "nomic-embed-text",
    "hash": "hashing-v1",
}

DEFAULT_CHAT_MODELS = {
    "openai": "gpt-4o-mini",
    "ollama": "llama3.1",
}


@dataclass
class ScoreWeights:
    """Weights used when fusing vector, lexical and pin signals."""

    factsheet_boost: float = 0.08
    lexical_base: float = 0.35
    endpoint_pin: float = 0.85
    symbol_pin: float = 0.78
    edge_pin: float = 0.72
    result_floor: int = 24
    lexical_min_similarity: float = 0.3
    endpoint_pin_limit: int = 60
    symbol_pin_limit: int = 60
    edge_pin_limit: int = 40


@dataclass
class LadderSettings:
    """Thresholds and limits for the multi-pass retrieval ladder."""

    default_k: int = 16
    base_threshold: float = 0.25
    widen_threshold: float = 0.15
    widen_min_k: int = 48
    lexical_limit: int = 64
    aggressive_min: int = 3
    hint_score: float = 0.99
    hint_chunk_limit: int = 8
    final_limit: int = 8
    context_chars: int = 1600


@dataclass
class Config:
    """Application configuration."""

    db_path: Path
    port: int
    host: str
    link_host: str
    embed_provider: str
    embed_model: str
    embed_base_url: str | None
    embed_dimensions: int
    chat_provider: str
    chat_model: str
    chat_base_url: str | None
    api_key: str | None
    provider_timeout: float
    github_token: str | None
    github_api_url: str
    repo_roots: dict[str, Path]
    github_repos: list[str]
    sync_interval: int
    max_file_bytes: int
    read_only: bool
    log_level: str
    weights: ScoreWeights = field(default_factory=ScoreWeights)
    ladder: LadderSettings = field(default_factory=LadderSettings)

    @classmethod
    def from_env(cls, read_only_override: bool | None = None) -> "Config":
        """Load configuration from environment variables.

        Args:
            read_only_override: If provided, overrides the CODECITE_READ_ONLY env var.
        """
        default_db = str(Path.home() / ".codecite" / "index.db")
        db_path = Path(_env("DB", default_db)).expanduser()

        port = _env_int("PORT", 8080)
        if not 1 <= port <= 65535:
            raise ValueError(f"Invalid CODECITE_PORT value '{port}': must be between 1 and 65535")

        embed_provider = _env("EMBED_PROVIDER", "openai").lower()
        if embed_provider not in PROVIDERS:
            raise ValueError(
                f"Invalid CODECITE_EMBED_PROVIDER '{embed_provider}', expected one of {', '.join(PROVIDERS)}"
            )
        chat_provider = _env("CHAT_PROVIDER", "openai").lower()
        if chat_provider not in CHAT_PROVIDERS:
            raise ValueError(
                f"Invalid CODECITE_CHAT_PROVIDER '{chat_provider}', expected one of {', '.join(CHAT_PROVIDERS)}"
            )

        timeout = _env_float("PROVIDER_TIMEOUT", 30.0)
        if timeout <= 0:
            raise ValueError("CODECITE_PROVIDER_TIMEOUT must be positive")

        sync_interval = _env_int("SYNC_INTERVAL", 0)
        if sync_interval < 0:
            raise ValueError("CODECITE_SYNC_INTERVAL must be zero (disabled) or positive")

        # Read-only mode - CLI flag takes precedence over env var
        if read_only_override is not None:
            read_only = read_only_override
        else:
            read_only = _env("READ_ONLY", "").lower() in ("1", "true", "yes")

        weights = ScoreWeights(
            factsheet_boost=_env_float("FACTSHEET_BOOST", ScoreWeights.factsheet_boost),
            lexical_base=_env_float("LEXICAL_BASE", ScoreWeights.lexical_base),
            endpoint_pin=_env_float("ENDPOINT_PIN", ScoreWeights.endpoint_pin),
            symbol_pin=_env_float("SYMBOL_PIN", ScoreWeights.symbol_pin),
            edge_pin=_env_float("EDGE_PIN", ScoreWeights.edge_pin),
            result_floor=_env_int("RESULT_FLOOR", ScoreWeights.result_floor),
            lexical_min_similarity=_env_float(
                "LEXICAL_MIN_SIMILARITY", ScoreWeights.lexical_min_similarity
            ),
        )
        ladder = LadderSettings(
            default_k=_env_int("DEFAULT_K", LadderSettings.default_k),
            base_threshold=_env_float("BASE_THRESHOLD", LadderSettings.base_threshold),
            widen_threshold=_env_float("WIDEN_THRESHOLD", LadderSettings.widen_threshold),
            hint_score=_env_float("HINT_SCORE", LadderSettings.hint_score),
            final_limit=_env_int("FINAL_LIMIT", LadderSettings.final_limit),
            context_chars=_env_int("CONTEXT_CHARS", LadderSettings.context_chars),
        )
        if ladder.final_limit <= 0:
            raise ValueError("CODECITE_FINAL_LIMIT must be positive")

        return cls(
            db_path=db_path,
            port=port,
            host=_env("HOST", "0.0.0.0"),
            link_host=_env("LINK_HOST", "https://github.com").rstrip("/"),
            embed_provider=embed_provider,
            embed_model=_env("EMBED_MODEL", DEFAULT_EMBED_MODELS[embed_provider]),
            embed_base_url=_provider_url("EMBED_BASE_URL", embed_provider),
            embed_dimensions=_env_int("EMBED_DIMENSIONS", 256),
            chat_provider=chat_provider,
            chat_model=_env("CHAT_MODEL", DEFAULT_CHAT_MODELS[chat_provider]),
            chat_base_url=_provider_url("CHAT_BASE_URL", chat_provider),
            api_key=os.getenv(ENV_PREFIX + "API_KEY") or os.getenv("OPENAI_API_KEY"),
            provider_timeout=timeout,
            github_token=os.getenv(ENV_PREFIX + "GITHUB_TOKEN") or os.getenv("GITHUB_TOKEN"),
            github_api_url=_env("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
            repo_roots=parse_repo_roots(_env("REPOS", "")),
            github_repos=parse_repo_names(_env("GITHUB_REPOS", "")),
            sync_interval=sync_interval,
            max_file_bytes=_env_int("MAX_FILE_BYTES", 1_500_000),
            read_only=read_only,
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            weights=weights,
            ladder=ladder,
        )


def parse_repo_roots(value: str) -> dict[str, Path]:
    """Parse ``org/repo=/path/to/checkout`` pairs separated by commas."""
    roots: dict[str, Path] = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, path = item.partition("=")
        name = name.strip()
        if not sep or "/" not in name or not path.strip():
            raise ValueError(
                f"Invalid CODECITE_REPOS entry '{item}', expected org/repo=/path/to/checkout"
            )
        roots[name] = Path(path.strip()).expanduser()
    return roots


def parse_repo_names(value: str) -> list[str]:
    """Parse a comma-separated list of ``org/repo`` names."""
    names: list[str] = []
    for item in value.split(","):
        name = item.strip()
        if not name:
            continue
        if name.count("/") != 1:
            raise ValueError(f"Invalid CODECITE_GITHUB_REPOS entry '{name}', expected org/repo")
        names.append(name)
    return names


def _env(name: str, default: str) -> str:
    return os.getenv(ENV_PREFIX + name, default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Invalid {ENV_PREFIX}{name} value '{raw}': {e}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"Invalid {ENV_PREFIX}{name} value '{raw}': {e}") from e


def _provider_url(name: str, provider: str) -> str | None:
    url = os.getenv(ENV_PREFIX + name)
    if url:
        return url
    if provider == "ollama":
        return DEFAULT_OLLAMA_URL
    return None
