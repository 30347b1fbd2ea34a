"""Pydantic models for ember.yaml configuration."""

from typing import Literal

from pydantic import BaseModel, Field


class AgentConfig(BaseModel):
    """Agent identity and loop configuration."""

    name: str = Field(default="Ember", description="Display name of the agent")
    username: str = Field(default="ember", description="Handle the agent uses in rooms")
    id: str | None = Field(
        default=None,
        description="Agent UUID. Derived deterministically from the name when omitted",
    )
    max_steps: int = Field(
        default=3,
        description="Maximum action-dispatch/follow-up rounds per inbound message",
        ge=1,
        le=20,
    )


class ModelTiersConfig(BaseModel):
    """Concrete model names behind the SMALL/MEDIUM/LARGE capability tiers."""

    small: str = Field(default="gpt-4o-mini", description="Model used for the SMALL tier")
    medium: str = Field(default="gpt-4o", description="Model used for the MEDIUM tier")
    large: str = Field(default="gpt-4o", description="Model used for the LARGE tier")


class LLMConfig(BaseModel):
    """Text-generation backend configuration."""

    backend: Literal["openai", "anthropic"] = Field(
        default="openai",
        description="Text-generation backend: any OpenAI-compatible server, or Anthropic",
    )
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Endpoint for the OpenAI-compatible backend (must include /v1)",
    )
    api_key: str | None = Field(default=None, description="API key for the backend")
    timeout: int = Field(default=120, description="Request timeout in seconds", ge=1)
    temperature: float = Field(default=0.7, description="Sampling temperature", ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, description="Maximum tokens per generation", ge=1)
    max_retries: int = Field(
        default=2,
        description="Retries after a failed generation (0 disables retrying)",
        ge=0,
        le=10,
    )
    retry_delay: float = Field(
        default=1.0,
        description="Initial retry delay in seconds, doubled on every attempt",
        ge=0.0,
        le=60.0,
    )
    models: ModelTiersConfig = Field(default_factory=ModelTiersConfig)


class HistoryConfig(BaseModel):
    """Recency window used when composing room state."""

    messages: int = Field(default=32, description="Most recent messages loaded per turn", ge=1)
    actions: int = Field(
        default=64, description="Most recent action calls/results loaded per turn", ge=1
    )
    thoughts: int = Field(default=16, description="Most recent thoughts loaded per turn", ge=1)


class RuntimeConfig(BaseModel):
    """Timeouts and state window for the orchestration loop."""

    generation_timeout: float | None = Field(
        default=180.0,
        description="Seconds before an LLM round is abandoned (None disables)",
        gt=0,
    )
    action_timeout: float | None = Field(
        default=60.0,
        description="Seconds before an action handler is recorded as failed (None disables)",
        gt=0,
    )
    history: HistoryConfig = Field(default_factory=HistoryConfig)


class StorageConfig(BaseModel):
    """Persistence backend configuration."""

    backend: Literal["memory", "sqlite"] = Field(
        default="memory",
        description="Persistence adapter: in-process memory or SQLite file",
    )
    path: str = Field(
        default="~/.ember/ember.db",
        description="SQLite database path (sqlite backend only)",
    )


class EmberConfig(BaseModel):
    """Root configuration schema for Ember."""

    agent: AgentConfig = Field(default_factory=AgentConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    settings: dict[str, str] = Field(
        default_factory=dict,
        description="Free-form settings read by plugins (API keys, endpoints)",
    )
