"""agentloop — ReAct decision and orchestration core for LLM agents."""

__version__ = "0.1.0"
