"""Shared fixtures and stubs for taskcrew tests."""

import itertools
import os
from typing import Dict, Optional

import pytest
import yaml

from taskcrew.crew.roles import DEFAULT_ROLES, WorkerFactory
from taskcrew.crew.tasks import InvocationRecord
from taskcrew.crew.worker import WorkerReply
from taskcrew.docs import DocsStore
from taskcrew.llm import LLMResponse, ToolCall
from taskcrew.tools import build_default_registry

_call_ids = itertools.count(1)


class FakeLLM:
    """Replays scripted LLMResponses; an Exception in the script is raised.

    ``model`` stays empty so token estimates use the offline heuristic.
    """

    def __init__(self, responses=(), model: str = ""):
        self.model = model
        self.temperature = 0.0
        self.max_tokens = 1024
        self.context_window = 128000
        self.responses = list(responses)
        self.calls = []

    async def chat(self, messages, tools=None, forced=None):
        self.calls.append({"messages": list(messages), "tools": tools, "forced": forced})
        if not self.responses:
            return LLMResponse(content="Nothing further to report.")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def reply(text: str) -> LLMResponse:
    return LLMResponse(content=text)


def call(name: str, **arguments) -> LLMResponse:
    return LLMResponse(content=None, tool_calls=[
        ToolCall(id=f"call_{next(_call_ids)}", name=name, arguments=arguments),
    ])


def worker_reply(output: str, calls: Optional[Dict[str, int]] = None,
                 failed: Optional[Dict[str, int]] = None) -> WorkerReply:
    """WorkerReply whose record holds ``calls`` successes and ``failed`` failures."""
    record = InvocationRecord()
    for name, n in (calls or {}).items():
        for _ in range(n):
            record.record(name, True)
    for name, n in (failed or {}).items():
        for _ in range(n):
            record.record(name, False)
    return WorkerReply(output, record, 1)


class FakeWorker:
    """Stands in for Worker: returns scripted replies, repeating the last one."""

    def __init__(self, replies=(), role: str = "dev",
                 capabilities=("read_file", "write_file", "generate_project"),
                 name: Optional[str] = None):
        self.role = role
        self.name = name or f"{role}-fake"
        self.capability_names = list(capabilities)
        self.replies = list(replies)
        self.prompts = []
        self.forced = []

    async def invoke(self, prompt, forced_capability=None, max_rounds=None):
        self.prompts.append(prompt)
        self.forced.append(forced_capability)
        if not self.replies:
            return worker_reply("No report.")
        item = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture
def docs(tmp_path):
    store = DocsStore(str(tmp_path / "docs"))
    store.initialize()
    return store


@pytest.fixture
def registry(tmp_path, docs):
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return build_default_registry(str(workspace), docs=docs)


@pytest.fixture
def make_factory(registry):
    """Build a WorkerFactory whose workers talk to per-role FakeLLMs.

    ``make_factory({"dev": [...], "qa": [...]})``; the FakeLLMs are exposed
    as ``factory.llms`` so tests can inspect calls.
    """
    def _make(scripts: Optional[dict] = None, roles: Optional[dict] = None):
        llms = {role: FakeLLM(responses) for role, responses in (scripts or {}).items()}

        def llm_for(role):
            return llms.setdefault(role.name, FakeLLM())

        factory = WorkerFactory(registry, dict(roles or DEFAULT_ROLES), llm_for)
        factory.llms = llms
        return factory
    return _make


@pytest.fixture
def sample_config_data():
    """Minimal .taskcrew.yml data dict."""
    return {
        "active-model": "local",
        "commit-prefix": "test: ",
        "command-timeout": 30,
        "verbose": False,
        "models": {
            "local": {
                "provider": "local",
                "model": "openai/model",
                "description": "Local test model",
                "temperature": 0.0,
                "max-tokens": 8192,
                "context-window": 128000,
                "api-base": "http://localhost:8080/v1",
                "api-key": "not-needed",
            }
        },
        "orchestration": {
            "max-attempts": 4,
            "max-iterations": 2,
            "design-docs": False,
            "roles": {"qa": {"capabilities": ["read_file", "run_command"], "max-rounds": 4}},
        },
    }


@pytest.fixture
def config_yaml_file(tmp_dir, sample_config_data):
    """Write a config YAML to tmp_dir and return its Path."""
    path = tmp_dir / ".taskcrew.yml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path
