"""Tests for env-driven configuration, logging setup and metrics."""

import json
import logging

import pytest

import agentloop.core.config as config_module
from agentloop.core.config import AgentLoopConfig, LoopConfig, SubAgentConfig
from agentloop.core.logging import PhaseTimer, StructuredFormatter, setup_logging
from agentloop.core.metrics import RunMetrics


# ─── Config ───────────────────────────────────────────────────


def test_defaults():
    cfg = LoopConfig()
    assert cfg.max_iterations == 10
    assert cfg.compact_threshold == 20
    assert cfg.execute_max_steps == 10
    assert cfg.terminal_tool == "finish_task"
    assert cfg.timeout_ms is None

    sub = SubAgentConfig()
    assert sub.persona == "sub_agent"
    assert sub.fallback_persona == "agent"
    assert sub.max_iterations == 15


def test_from_env(monkeypatch):
    monkeypatch.setenv("AGENTLOOP_MAX_ITERATIONS", "4")
    monkeypatch.setenv("AGENTLOOP_COMPACT_THRESHOLD", "12")
    monkeypatch.setenv("AGENTLOOP_TIMEOUT_MS", "30000")
    monkeypatch.setenv("AGENTLOOP_THINK_OPEN", "<reasoning>")
    monkeypatch.setenv("AGENTLOOP_SUBAGENT_MAX_ITERATIONS", "3")
    monkeypatch.setenv("AGENTLOOP_LLM_MODEL", "local-model")

    cfg = AgentLoopConfig.from_env()

    assert cfg.loop.max_iterations == 4
    assert cfg.loop.compact_threshold == 12
    assert cfg.loop.timeout_ms == 30000
    assert cfg.loop.think_open == "<reasoning>"
    assert cfg.sub_agent.max_iterations == 3
    assert cfg.llm.model == "local-model"


def test_blank_timeout_is_none(monkeypatch):
    monkeypatch.setenv("AGENTLOOP_TIMEOUT_MS", "  ")
    assert LoopConfig.from_env().timeout_ms is None


def test_reload_config(monkeypatch):
    original = config_module.config
    monkeypatch.setenv("AGENTLOOP_EXECUTE_MAX_STEPS", "2")
    try:
        reloaded = config_module.reload_config()
        assert config_module.config is reloaded
        assert config_module.config.loop.execute_max_steps == 2
    finally:
        config_module.config = original


def test_frozen():
    with pytest.raises(Exception):
        LoopConfig().max_iterations = 99


# ─── Logging ──────────────────────────────────────────────────


def test_structured_formatter_fields():
    record = logging.LogRecord("agentloop.test", logging.INFO, __file__, 1, "hello %s", ("x",), None)
    record.session_id = "s-1"
    record.iteration = 2

    entry = json.loads(StructuredFormatter().format(record))

    assert entry["msg"] == "hello x"
    assert entry["level"] == "INFO"
    assert entry["session_id"] == "s-1"
    assert entry["iteration"] == 2
    assert "decision" not in entry


def test_setup_logging_quiets_noisy_loggers(monkeypatch):
    monkeypatch.setenv("AGENTLOOP_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("AGENTLOOP_LOG_FORMAT", "json")
    root = logging.getLogger()
    saved = (root.level, list(root.handlers))
    try:
        setup_logging()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert logging.getLogger("openai").level == logging.WARNING
    finally:
        root.setLevel(saved[0])
        root.handlers[:] = saved[1]


def test_phase_timer():
    timer = PhaseTimer()
    with timer.phase("PLANNING"):
        pass
    with timer.phase("PLANNING"):
        pass
    timer.record("EXECUTING", 1.5)

    assert timer.elapsed("EXECUTING") == 1.5
    assert timer.elapsed("COMPACTING") is None
    summary = timer.summary()
    assert "PLANNING" in summary and "(x2)" in summary
    assert summary.endswith("s")


# ─── Metrics ──────────────────────────────────────────────────


def test_run_metrics():
    m = RunMetrics()
    m.inc("loop.decisions", labels={"decision": "stop"})
    m.inc("loop.decisions", labels={"decision": "stop"})
    m.observe("processor.step_ms", 10.0, labels={"persona": "agent"})
    m.observe("processor.step_ms", 30.0, labels={"persona": "agent"})
    m.gauge_inc("loop.active")
    m.gauge_dec("loop.active")

    snap = m.snapshot()

    assert m.counter("loop.decisions", {"decision": "stop"}) == 2
    assert m.counter("loop.decisions", {"decision": "continue"}) == 0
    assert snap["counters"] == {"loop.decisions": {"decision=stop": 2}}
    assert snap["timings"]["processor.step_ms"]["persona=agent"] == {
        "count": 2,
        "avg": 20.0,
        "min": 10.0,
        "max": 30.0,
    }
    assert snap["gauges"] == {"loop.active": {"": 0.0}}

    m.reset()
    assert m.snapshot()["counters"] == {}
