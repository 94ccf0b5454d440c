"""Configuration management for VoxReply.

Loads config from ~/.voxreply/config.json, environment variables, or defaults.
This is the only module that reads the environment; every component receives
its section of the config at construction.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

_TRUTHY = {"1", "true", "yes", "on"}


def _default_config_dir() -> Path:
    """Return the default VoxReply config directory."""
    return Path.home() / ".voxreply"


@dataclass
class AgentConfig:
    """Llama Stack agent settings."""

    base_url: str = "http://localhost:8321"
    model: str = "vllm-inference/llama-3-2-3b-instruct"
    api_key: str = ""
    instructions: str = (
        "You are a helpful WhatsApp voice assistant. Your answers are read out "
        "loud, so keep them short, friendly and free of markdown."
    )
    tool_groups: list[str] = field(default_factory=list)
    tool_choice: str = "auto"  # "auto" or "required"
    temperature: float = 0.7
    max_tokens: int = 200
    max_infer_iters: int = 10
    timeout: float = 120.0


@dataclass
class SpeechConfig:
    """Speech-to-text settings (cloud engine when cloud_api_key is set)."""

    whisper_binary: str = "whisper"
    whisper_model: str = "base"
    language: str = ""
    timeout_seconds: float = 300.0
    cloud_api_key: str = ""
    cloud_base_url: str = "https://api.openai.com/v1"
    cloud_model: str = "whisper-1"
    output_dir: str = ""


@dataclass
class SynthesisConfig:
    """Text-to-speech and transcoding settings."""

    espeak_binary: str = "espeak"
    voice: str = "en"
    words_per_minute: int = 150
    ffmpeg_binary: str = "ffmpeg"
    bitrate: str = "64k"
    sample_rate: int = 48000
    channels: int = 1


@dataclass
class DeliveryConfig:
    """Outbound media delivery settings."""

    ffprobe_binary: str = "ffprobe"
    max_upload_attempts: int = 3
    retry_delay_seconds: float = 2.0


@dataclass
class PipelineConfig:
    """Voice pipeline settings."""

    debug_echo: bool = True
    work_dir: str = ""


@dataclass
class MemoryConfig:
    """Message store settings."""

    database: str = ""


@dataclass
class VoxConfig:
    """Root configuration for VoxReply."""

    name: str = "VoxReply"
    version: str = "0.1.0"

    agent: AgentConfig = field(default_factory=AgentConfig)
    speech: SpeechConfig = field(default_factory=SpeechConfig)
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)

    config_dir: Path = field(default_factory=_default_config_dir)

    def __post_init__(self) -> None:
        """Set computed defaults after initialization."""
        if not self.pipeline.work_dir:
            self.pipeline.work_dir = str(self.config_dir / "media")
        if not self.speech.output_dir:
            self.speech.output_dir = str(self.config_dir / "media" / "transcripts")
        if not self.memory.database:
            self.memory.database = str(self.config_dir / "messages.db")

    @property
    def work_path(self) -> Path:
        """Return the directory holding per-run working files."""
        return Path(self.pipeline.work_dir)

    @property
    def database_path(self) -> Path:
        """Return the resolved database path."""
        return Path(self.memory.database)

    @property
    def log_dir(self) -> Path:
        """Return the log directory."""
        return self.config_dir / "logs"


def _load_env_overrides(config: VoxConfig) -> None:
    """Override config values from environment variables."""
    if base_url := os.getenv("LLAMASTACK_BASE_URL"):
        config.agent.base_url = base_url
    if model := os.getenv("LLAMASTACK_MODEL"):
        config.agent.model = model
    if api_key := os.getenv("LLAMASTACK_API_KEY"):
        config.agent.api_key = api_key
    if temperature := os.getenv("LLAMASTACK_TEMPERATURE"):
        try:
            config.agent.temperature = float(temperature)
        except ValueError:
            pass
    if max_tokens := os.getenv("LLAMASTACK_MAX_TOKENS"):
        try:
            config.agent.max_tokens = int(max_tokens)
        except ValueError:
            pass
    if tool_group := os.getenv("LLAMASTACK_MCP_TOOL_GROUP"):
        config.agent.tool_groups = [g.strip() for g in tool_group.split(",") if g.strip()]
    if tool_choice := os.getenv("LLAMASTACK_TOOL_CHOICE"):
        config.agent.tool_choice = tool_choice
    if openai_key := os.getenv("OPENAI_API_KEY"):
        config.speech.cloud_api_key = openai_key
    if whisper_model := os.getenv("WHISPER_MODEL"):
        config.speech.whisper_model = whisper_model
    if media_dir := os.getenv("WHATSAPP_MEDIA_DIR"):
        config.pipeline.work_dir = media_dir
    if db_path := os.getenv("VOXREPLY_DB_PATH"):
        config.memory.database = db_path
    if (echo := os.getenv("VOXREPLY_DEBUG_ECHO")) is not None:
        config.pipeline.debug_echo = echo.strip().lower() in _TRUTHY


def _update_section(section: object, data: dict) -> None:
    """Copy known keys from a JSON dict onto a config dataclass."""
    for key, value in data.items():
        if hasattr(section, key):
            setattr(section, key, value)


def _dict_to_config(data: dict, config_dir: Path | None = None) -> VoxConfig:
    """Convert a JSON dict to a VoxConfig."""
    config = VoxConfig(config_dir=config_dir) if config_dir else VoxConfig()

    app = data.get("app", {})
    config.name = app.get("name", config.name)
    config.version = app.get("version", config.version)

    for section_name in ("agent", "speech", "synthesis", "delivery", "pipeline", "memory"):
        if section_data := data.get(section_name):
            _update_section(getattr(config, section_name), section_data)

    return config


def _config_to_dict(config: VoxConfig) -> dict:
    """Convert a VoxConfig to a JSON-serializable dict."""
    return {
        "app": {"name": config.name, "version": config.version},
        "agent": {
            "base_url": config.agent.base_url,
            "model": config.agent.model,
            "instructions": config.agent.instructions,
            "tool_groups": config.agent.tool_groups,
            "tool_choice": config.agent.tool_choice,
            "temperature": config.agent.temperature,
            "max_tokens": config.agent.max_tokens,
            "max_infer_iters": config.agent.max_infer_iters,
            "timeout": config.agent.timeout,
        },
        "speech": {
            "whisper_binary": config.speech.whisper_binary,
            "whisper_model": config.speech.whisper_model,
            "language": config.speech.language,
            "timeout_seconds": config.speech.timeout_seconds,
            "cloud_base_url": config.speech.cloud_base_url,
            "cloud_model": config.speech.cloud_model,
            "output_dir": config.speech.output_dir,
        },
        "synthesis": {
            "espeak_binary": config.synthesis.espeak_binary,
            "voice": config.synthesis.voice,
            "words_per_minute": config.synthesis.words_per_minute,
            "ffmpeg_binary": config.synthesis.ffmpeg_binary,
            "bitrate": config.synthesis.bitrate,
            "sample_rate": config.synthesis.sample_rate,
            "channels": config.synthesis.channels,
        },
        "delivery": {
            "ffprobe_binary": config.delivery.ffprobe_binary,
            "max_upload_attempts": config.delivery.max_upload_attempts,
            "retry_delay_seconds": config.delivery.retry_delay_seconds,
        },
        "pipeline": {
            "debug_echo": config.pipeline.debug_echo,
            "work_dir": config.pipeline.work_dir,
        },
        "memory": {"database": config.memory.database},
    }


def load_config(config_path: Path | None = None) -> VoxConfig:
    """Load VoxReply configuration from file, env vars, and defaults.

    Priority: env vars > config file > defaults.
    Creates default config file if it doesn't exist. Secrets (API keys) are
    never written to the file.
    """
    config_dir = _default_config_dir()
    config_file = config_path or (config_dir / "config.json")

    if config_file.exists():
        with open(config_file) as f:
            data = json.load(f)
        config = _dict_to_config(data, config_dir)
    else:
        config = VoxConfig(config_dir=config_dir)

    _load_env_overrides(config)

    config.config_dir.mkdir(parents=True, exist_ok=True)
    config.work_path.mkdir(parents=True, exist_ok=True)
    config.log_dir.mkdir(parents=True, exist_ok=True)

    if not config_file.exists():
        save_config(config, config_file)

    return config


def save_config(config: VoxConfig, config_path: Path | None = None) -> None:
    """Save configuration to JSON file."""
    config_file = config_path or (config.config_dir / "config.json")
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        json.dump(_config_to_dict(config), f, indent=2)
