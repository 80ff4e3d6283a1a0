"""Configuration management for the MCP chat agent.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once at startup and passed explicitly to the
components that need it.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


class LLMSettings(BaseSettings):
    """Chat backend configuration."""
    provider: str = Field(default="openai", description="LLM provider: azure_openai, openai, ollama, mock")
    model: Optional[str] = Field(default=None, description="Model name; provider default when unset")
    api_key: Optional[str] = Field(default=None, description="API key")
    api_base: Optional[str] = Field(default=None, description="API base URL or Ollama endpoint")
    api_version: Optional[str] = Field(default="2024-10-21", description="Azure API version")
    deployment_name: Optional[str] = Field(default=None, description="Azure deployment name")
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    request_timeout: float = Field(default=300.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore"
    )


class MCPServerConfig(BaseModel):
    """One remote tool server."""
    name: str
    endpoint: str
    enabled: bool = True
    transport: Literal["sse", "streamable_http"] = "sse"


class MCPClientSettings(BaseSettings):
    """Tool server connection configuration."""
    connect_timeout_seconds: float = Field(default=30.0, gt=0)
    # Tool listing is rare and expensive to retry; never time out an idle stream.
    read_timeout_hours: float = Field(default=24.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="MCP_CLIENT_",
        env_file=".env",
        extra="ignore"
    )


class OrchestratorSettings(BaseSettings):
    """Session orchestrator and HTTP gateway configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)

    idle_reconnect_minutes: float = Field(default=2.0, ge=0)
    max_tool_iterations: int = Field(default=10, gt=0)

    static_dir: Optional[str] = Field(default="wwwroot")

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_",
        env_file=".env",
        extra="ignore"
    )


class WhisperSettings(BaseSettings):
    """Speech-to-text gateway configuration."""
    api_key: Optional[str] = Field(default=None)
    endpoint: str = Field(default="https://api.openai.com/v1/")
    model: str = Field(default="whisper-1")
    language: str = Field(default="en")
    min_audio_bytes: int = Field(default=3000, ge=0)
    max_audio_bytes: int = Field(default=26214400, gt=0)
    timeout: float = Field(default=60.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="WHISPER_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Component settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    mcp_client: MCPClientSettings = Field(default_factory=MCPClientSettings)
    mcp_servers: list[MCPServerConfig] = Field(default_factory=list)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    whisper: WhisperSettings = Field(default_factory=WhisperSettings)

    model_config = SettingsConfigDict(
        env_prefix="MCP_AGENT_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        return cls(**load_yaml_config(path))

    @property
    def enabled_servers(self) -> list[MCPServerConfig]:
        return [s for s in self.mcp_servers if s.enabled]


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    config_path = os.environ.get("MCP_AGENT_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)
