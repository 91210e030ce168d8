"""Pytest configuration and shared fixtures for jupyter-code-interpreter tests."""

import base64
import copy
import json
import posixpath
import uuid

import pytest
from websockets.exceptions import ConnectionClosedError

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


def kernel_message(msg_type, content, parent_id="parent", channel="iopub"):
    return {
        "header": {
            "msg_id": str(uuid.uuid4()),
            "msg_type": msg_type,
            "session": str(uuid.uuid4()),
            "username": "kernel",
            "version": "5.2",
        },
        "parent_header": {"msg_id": parent_id},
        "metadata": {},
        "content": content,
        "channel": channel,
    }


class FakeWebSocket:
    """Kernel channel that answers an execute_request with a scripted reply."""

    def __init__(self, script, foreign_first=False):
        self.script = script
        self.foreign_first = foreign_first
        self.sent = []
        self.closed = False
        self._queue = []

    async def send(self, data):
        request = json.loads(data)
        self.sent.append(request)
        parent_id = request["header"]["msg_id"]
        if self.foreign_first:
            self._queue.append(
                kernel_message("stream", {"name": "stdout", "text": "other client"}, "someone-else")
            )
        for msg_type, content, channel in self.script:
            self._queue.append(kernel_message(msg_type, content, parent_id, channel))

    async def recv(self):
        if not self._queue:
            raise ConnectionClosedError(None, None)
        return json.dumps(self._queue.pop(0))

    async def close(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()


def execution_script(*outputs, execution_count=1):
    """Busy, input, the given IOPub outputs, reply, idle - in kernel order."""
    script = [
        ("status", {"execution_state": "busy"}, "iopub"),
        ("execute_input", {"code": "...", "execution_count": execution_count}, "iopub"),
    ]
    script.extend((msg_type, content, "iopub") for msg_type, content in outputs)
    script.append(("execute_reply", {"status": "ok", "execution_count": execution_count}, "shell"))
    script.append(("status", {"execution_state": "idle"}, "iopub"))
    return script


class FakeFuture:
    def __init__(self, messages):
        self.messages = messages
        self.handler = None

    def register_iopub_handler(self, handler):
        self.handler = handler

    async def completed(self):
        for msg in self.messages:
            self.handler(msg)
        return {"status": "ok"}


class FakeKernel:
    def __init__(self, outputs):
        self.outputs = outputs
        self.executed = []

    async def request_execute(self, code):
        self.executed.append(code)
        return FakeFuture(
            [kernel_message(msg_type, content) for msg_type, content in self.outputs]
        )


class FakeSession:
    def __init__(self, model, kernel):
        self.model = model
        self.path = model["path"]
        self.kernel = kernel


class FakeContentsManager:
    """In-memory stand-in for the Jupyter contents API."""

    def __init__(self):
        self.entries = {"": {"name": "", "path": "", "type": "directory"}}
        self.created = []
        self.saved = []

    async def get(self, path, content=True):
        path = path.strip("/")
        entry = copy.deepcopy(self.entries[path])
        if entry["type"] == "directory":
            entry["content"] = [
                {key: value for key, value in child.items() if key != "content"}
                for child_path, child in self.entries.items()
                if child_path and posixpath.dirname(child_path) == path
            ]
        return entry

    async def new_untitled(self, path="", type="directory"):
        new_path = posixpath.join(path, "Untitled Folder")
        self.entries[new_path] = {"name": "Untitled Folder", "path": new_path, "type": type}
        self.created.append(new_path)
        return dict(self.entries[new_path])

    async def rename(self, path, new_path):
        entry = self.entries.pop(path)
        entry = {**entry, "name": posixpath.basename(new_path), "path": new_path}
        self.entries[new_path] = entry
        return dict(entry)

    async def save(self, path, model):
        self.entries[path] = copy.deepcopy(model)
        self.saved.append(path)
        return model


class FakeSessionManager:
    """In-memory stand-in for the Jupyter sessions API."""

    def __init__(self, kernel, with_kernel=True):
        self.kernel = kernel
        self.with_kernel = with_kernel
        self.is_ready = False
        self.ready_calls = 0
        self.sessions = {}
        self.started = []

    async def ready(self):
        self.ready_calls += 1
        self.is_ready = True

    async def find_by_path(self, path):
        return self.sessions.get(path)

    def connect_to(self, model, username=None):
        return FakeSession(model, self.kernel if model.get("kernel") else None)

    async def start_new(self, descriptor, identity):
        model = {
            "id": str(uuid.uuid4()),
            **descriptor,
            "kernel": {"id": "kernel-1", "name": descriptor["kernel"]["name"]} if self.with_kernel else None,
        }
        self.sessions[descriptor["path"]] = model
        self.started.append((descriptor, identity))
        return self.connect_to(model, identity["username"])


@pytest.fixture
def mock_env(monkeypatch):
    """Mock environment variables for testing."""
    test_env = {
        "JUPYTER_HOST": "localhost",
        "JUPYTER_PORT": "8888",
        "JUPYTER_PROTOCOL": "http",
        "JUPYTER_WS_PROTOCOL": "ws",
        "JUPYTER_TOKEN": "test-token-12345",
    }
    for key, value in test_env.items():
        monkeypatch.setenv(key, value)
    return test_env


@pytest.fixture
def png_base64():
    return base64.b64encode(PNG_BYTES).decode()


@pytest.fixture
def contents_manager():
    return FakeContentsManager()


@pytest.fixture
def make_kernel():
    return FakeKernel


@pytest.fixture
def make_session_manager():
    return FakeSessionManager


@pytest.fixture
def make_websocket():
    return FakeWebSocket


@pytest.fixture
def make_script():
    return execution_script


@pytest.fixture
def make_message():
    return kernel_message


@pytest.fixture
def sample_notebook():
    """Sample saved notebook with one executed cell."""
    return {
        "name": "c1.ipynb",
        "path": "u1/c1.ipynb",
        "type": "notebook",
        "writable": True,
        "created": "2024-01-01T00:00:00Z",
        "last_modified": "2024-01-01T00:00:00Z",
        "format": "json",
        "content": {
            "cells": [
                {
                    "cell_type": "code",
                    "id": "cell-1",
                    "source": "x = 1\nx",
                    "metadata": {},
                    "outputs": [
                        {
                            "output_type": "execute_result",
                            "data": {"text/plain": "1"},
                            "metadata": {},
                            "execution_count": 1,
                        }
                    ],
                    "execution_count": 1,
                },
                {
                    "cell_type": "markdown",
                    "id": "cell-2",
                    "source": "# Notes",
                    "metadata": {},
                },
            ],
            "metadata": {
                "kernelspec": {
                    "display_name": "Python 3",
                    "language": "python",
                    "name": "python3",
                }
            },
            "nbformat": 4,
            "nbformat_minor": 5,
        },
    }


@pytest.fixture
def png_bytes():
    return PNG_BYTES
