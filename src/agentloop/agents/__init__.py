"""Personas and the loop-runner interface used for sub-agent delegation."""

from agentloop.agents.personas import Persona, PersonaRegistry
from agentloop.agents.runner import LoopRunner

__all__ = ["Persona", "PersonaRegistry", "LoopRunner"]
