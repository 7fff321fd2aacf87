"""
agentloop Configuration — single source of truth for all settings.

Reads from environment variables (and a .env file, if present) with
sensible defaults. No config files, no YAML. Just env vars.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


@dataclass(frozen=True)
class LoopConfig:
    """Outer loop and execute-step budgets."""

    max_iterations: int = 10
    compact_threshold: int = 20
    execute_max_steps: int = 10
    max_retries: int = 3
    timeout_ms: int | None = None
    # Calling this tool ends the inner tool loop
    terminal_tool: str = "finish_task"
    think_open: str = "<think>"
    think_close: str = "</think>"

    @classmethod
    def from_env(cls) -> LoopConfig:
        return cls(
            max_iterations=int(os.getenv("AGENTLOOP_MAX_ITERATIONS", "10")),
            compact_threshold=int(os.getenv("AGENTLOOP_COMPACT_THRESHOLD", "20")),
            execute_max_steps=int(os.getenv("AGENTLOOP_EXECUTE_MAX_STEPS", "10")),
            max_retries=int(os.getenv("AGENTLOOP_MAX_RETRIES", "3")),
            timeout_ms=_optional_int("AGENTLOOP_TIMEOUT_MS"),
            terminal_tool=os.getenv("AGENTLOOP_TERMINAL_TOOL", "finish_task"),
            think_open=os.getenv("AGENTLOOP_THINK_OPEN", "<think>"),
            think_close=os.getenv("AGENTLOOP_THINK_CLOSE", "</think>"),
        )


@dataclass(frozen=True)
class SubAgentConfig:
    """Budgets for nested runs started by spawn_agent."""

    persona: str = "sub_agent"
    fallback_persona: str = "agent"
    max_iterations: int = 15
    compact_threshold: int = 25

    @classmethod
    def from_env(cls) -> SubAgentConfig:
        return cls(
            persona=os.getenv("AGENTLOOP_SUBAGENT_PERSONA", "sub_agent"),
            fallback_persona=os.getenv("AGENTLOOP_SUBAGENT_FALLBACK_PERSONA", "agent"),
            max_iterations=int(os.getenv("AGENTLOOP_SUBAGENT_MAX_ITERATIONS", "15")),
            compact_threshold=int(
                os.getenv("AGENTLOOP_SUBAGENT_COMPACT_THRESHOLD", "25")
            ),
        )


@dataclass(frozen=True)
class LLMConfig:
    """Language model provider settings."""

    api_key: str = ""
    base_url: str = ""
    model: str = "gpt-4o"
    max_tokens: int = 4096
    temperature: float = 0.7

    @classmethod
    def from_env(cls) -> LLMConfig:
        return cls(
            api_key=os.getenv("OPENAI_API_KEY", ""),
            base_url=os.getenv("AGENTLOOP_LLM_BASE_URL", ""),
            model=os.getenv("AGENTLOOP_LLM_MODEL", "gpt-4o"),
            max_tokens=int(os.getenv("AGENTLOOP_LLM_MAX_TOKENS", "4096")),
            temperature=float(os.getenv("AGENTLOOP_LLM_TEMPERATURE", "0.7")),
        )


@dataclass(frozen=True)
class StoreConfig:
    """Session store settings."""

    db_path: str = "agentloop_sessions.db"

    @classmethod
    def from_env(cls) -> StoreConfig:
        return cls(db_path=os.getenv("AGENTLOOP_DB_PATH", "agentloop_sessions.db"))


@dataclass(frozen=True)
class AgentLoopConfig:
    """Root configuration."""

    loop: LoopConfig = field(default_factory=LoopConfig)
    sub_agent: SubAgentConfig = field(default_factory=SubAgentConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    store: StoreConfig = field(default_factory=StoreConfig)

    @classmethod
    def from_env(cls) -> AgentLoopConfig:
        return cls(
            loop=LoopConfig.from_env(),
            sub_agent=SubAgentConfig.from_env(),
            llm=LLMConfig.from_env(),
            store=StoreConfig.from_env(),
        )


# Singleton: import this wherever you need config
config = AgentLoopConfig.from_env()


def reload_config() -> AgentLoopConfig:
    """Re-read the environment into the module singleton."""
    global config
    config = AgentLoopConfig.from_env()
    return config
