#!/usr/bin/env python3
"""
Jupyter Code Interpreter - a stateful notebook sandbox for conversational agents

Every (user, conversation) pair owns one notebook on a Jupyter server,
`{user_id}/{conversation_id}.ipynb`, and one live python3 kernel session bound
to that path. Each call:

1. Resolves the notebook (creating missing directories, never writing an
   empty notebook)
2. Resolves the session, reusing the one already bound to the notebook path
3. Executes the code and folds the kernel's IOPub stream into one text result
4. Extracts PNG display data into the public images directory
5. Appends the executed cell to the notebook and saves it

Failures anywhere in that sequence come back as a plain string, so the agent
always gets something it can read and react to.
"""

from fastmcp import FastMCP
import httpx
import os
import websockets
from websockets.exceptions import ConnectionClosed
import json
import uuid
import asyncio
import base64
import binascii
import logging
import posixpath
import sys
from collections import OrderedDict
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote

import auto_token_retrieval


# Debug mode - set via environment variable
DEBUG = os.environ.get("JUPYTER_MCP_DEBUG", "").lower() == "true"


# Helper function to print debug messages to stderr
def debug_print(*args, **kwargs):
    if DEBUG:
        print(*args, **kwargs, file=sys.stderr)


logger = logging.getLogger("jupyter_code_interpreter")

mcp = FastMCP("jupyter-code-interpreter")

CONFIG = {
    # Jupyter server configuration
    "JUPYTER_HOST": os.environ.get("JUPYTER_HOST", "localhost"),
    "JUPYTER_PORT": os.environ.get("JUPYTER_PORT", "8888"),
    "JUPYTER_PROTOCOL": os.environ.get("JUPYTER_PROTOCOL", "http"),
    "JUPYTER_WS_PROTOCOL": os.environ.get("JUPYTER_WS_PROTOCOL", "ws"),
    # JupyterHub style deployments serve each user under /user/{name}
    "JUPYTER_PER_USER": os.environ.get("JUPYTER_PER_USER", "").lower() == "true",
    # Where extracted images are written; served as /images/{name}
    "IMAGES_DIR": os.environ.get(
        "CODE_INTERPRETER_IMAGES_DIR", os.path.join("client", "public", "images")
    ),
    "DEFAULT_USER": os.environ.get("CODE_INTERPRETER_USER", "mcp"),
    # Largest kernel message accepted in bytes; unset means no limit
    "WS_MAX_SIZE": (
        int(os.environ["JUPYTER_WS_MAX_SIZE"])
        if os.environ.get("JUPYTER_WS_MAX_SIZE")
        else None
    ),
    # Per-user manager handles kept by the MCP tools
    "MAX_CACHED_USERS": int(os.environ.get("CODE_INTERPRETER_MAX_USERS", "256")),
}

KERNEL_NAME = "python3"
KERNEL_SPEC = {"name": "python3", "display_name": "Python 3", "language": "python"}

IMAGE_MIMETYPE = "image/png"
IMAGE_URL_PREFIX = "/images"

# Output kinds folded into the result text
EXECUTE_RESULT = "execute_result"
DISPLAY_DATA = "display_data"
STREAM = "stream"
ERROR = "error"

# IOPub bookkeeping consumed by KernelFuture, never recorded as outputs:
# neither is a valid nbformat output type
LIFECYCLE_MESSAGES = ("status", "execute_input")


class ConfigurationError(ValueError):
    """Missing configuration or malformed tool input."""


class KernelError(RuntimeError):
    """The kernel channel failed before execution completed."""


def get_jupyter_token() -> str:
    """Return the Jupyter token from the environment or a running server's files."""
    token = os.environ.get("JUPYTER_TOKEN")
    if token:
        return token

    discovered = auto_token_retrieval.find_token()
    if discovered:
        debug_print(f"Jupyter token loaded from {discovered['source']}")
        return discovered["token"]

    raise ConfigurationError("Missing JUPYTER_TOKEN environment variable.")


class ServerSettings:
    """REST and websocket endpoints of one Jupyter server"""

    def __init__(
        self,
        base_url: str,
        ws_url: str,
        token: str = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.ws_url = ws_url.rstrip("/")
        self.token = token
        self.transport = transport

    @property
    def headers(self) -> dict:
        headers = {}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, headers=self.headers, transport=self.transport
        )


def _server_root() -> str:
    return f"{CONFIG['JUPYTER_HOST']}:{CONFIG['JUPYTER_PORT']}"


def create_server_settings() -> ServerSettings:
    """Settings for a general, single-user Jupyter server."""
    root = _server_root()
    return ServerSettings(
        base_url=f"{CONFIG['JUPYTER_PROTOCOL']}://{root}",
        ws_url=f"{CONFIG['JUPYTER_WS_PROTOCOL']}://{root}",
        token=get_jupyter_token(),
    )


def create_server_settings_for_user(username: str) -> ServerSettings:
    """Settings for the Jupyter server of one user behind a hub."""
    root = f"{_server_root()}/user/{quote(username)}"
    return ServerSettings(
        base_url=f"{CONFIG['JUPYTER_PROTOCOL']}://{root}",
        ws_url=f"{CONFIG['JUPYTER_WS_PROTOCOL']}://{root}",
        token=get_jupyter_token(),
    )


def _contents_url(path: str) -> str:
    return f"/api/contents/{quote(path.strip('/'))}"


class ContentsManager:
    """Client for the Jupyter contents API (the notebook document store)"""

    def __init__(self, settings: ServerSettings):
        self.settings = settings

    async def get(self, path: str, content: bool = True) -> dict:
        async with self.settings.client() as client:
            response = await client.get(
                _contents_url(path), params={"content": int(content)}
            )
            response.raise_for_status()
            return response.json()

    async def new_untitled(self, path: str = "", type: str = "directory") -> dict:
        async with self.settings.client() as client:
            response = await client.post(_contents_url(path), json={"type": type})
            response.raise_for_status()
            model = response.json()
        debug_print(f"Created untitled {type}: {model.get('path')}")
        return model

    async def rename(self, path: str, new_path: str) -> dict:
        async with self.settings.client() as client:
            response = await client.patch(_contents_url(path), json={"path": new_path})
            response.raise_for_status()
            model = response.json()
        debug_print(f"Renamed {path} -> {new_path}")
        return model

    async def save(self, path: str, model: dict) -> dict:
        async with self.settings.client() as client:
            response = await client.put(_contents_url(path), json=model)
            response.raise_for_status()
            saved = response.json()
        debug_print(f"Saved {model.get('type', 'file')}: {path}")
        return saved


class SessionManager:
    """Client for the Jupyter sessions API (the session registry)"""

    def __init__(self, settings: ServerSettings):
        self.settings = settings
        self.is_ready = False
        self._running = []
        self._ready_lock = asyncio.Lock()

    async def ready(self):
        """Wait for the first listing of running sessions. Only the first call does I/O."""
        if self.is_ready:
            return
        async with self._ready_lock:
            if not self.is_ready:
                await self.refresh_running()
                self.is_ready = True

    async def refresh_running(self) -> list:
        async with self.settings.client() as client:
            response = await client.get("/api/sessions")
            response.raise_for_status()
            self._running = response.json()
        return self._running

    async def find_by_path(self, path: str) -> dict:
        for model in await self.refresh_running():
            if model.get("path") == path:
                return model
        return None

    def connect_to(self, model: dict, username: str = None) -> "SessionConnection":
        return SessionConnection(model, self.settings, username=username)

    async def start_new(self, descriptor: dict, identity: dict) -> "SessionConnection":
        async with self.settings.client() as client:
            response = await client.post("/api/sessions", json=descriptor)
            response.raise_for_status()
            model = response.json()
        self._running.append(model)
        debug_print(f"Started session {model.get('id')} for {descriptor.get('path')}")
        return self.connect_to(model, username=identity.get("username"))


def initialize_managers(settings: ServerSettings) -> tuple:
    """Create the managers used to talk to the Jupyter server."""
    return ContentsManager(settings), SessionManager(settings)


class SessionConnection:
    """A live session model with its kernel, if one is attached"""

    def __init__(self, model: dict, settings: ServerSettings, username: str = None):
        self.model = model
        self.id = model.get("id")
        self.path = model.get("path")
        self.name = model.get("name")
        kernel_model = model.get("kernel")
        self.kernel = (
            KernelConnection(kernel_model, settings, username=username)
            if kernel_model
            else None
        )


async def _connect_with_backoff(ws_endpoint: str, subprotocols: list, max_retries: int = 5):
    """
    Connect to a kernel channel with exponential backoff.
    Kernels that were just started often refuse the first few connections.
    """
    base_delay = 1.0
    max_delay = 30.0

    for attempt in range(max_retries):
        try:
            return await websockets.connect(
                ws_endpoint, subprotocols=subprotocols, max_size=CONFIG["WS_MAX_SIZE"]
            )
        except Exception as e:
            if attempt == max_retries - 1:
                raise KernelError(
                    f"Could not connect to kernel after {max_retries} attempts: {e}"
                ) from e

            delay = min(base_delay * (2**attempt), max_delay)
            debug_print(
                f"Kernel connection attempt {attempt + 1} failed: {e} (waiting {delay:.1f}s)"
            )
            await asyncio.sleep(delay)

    raise KernelError("Unable to establish kernel connection")


class KernelConnection:
    """Speaks the Jupyter message protocol (v5.2, JSON) over a kernel websocket"""

    def __init__(self, model: dict, settings: ServerSettings, username: str = None):
        self.id = model["id"]
        self.name = model.get("name", KERNEL_NAME)
        self.settings = settings
        self.username = username or CONFIG["DEFAULT_USER"]
        # Client session id, shared by every message this connection sends
        self.client_id = str(uuid.uuid4())

    @property
    def ws_endpoint(self) -> str:
        endpoint = (
            f"{self.settings.ws_url}/api/kernels/{self.id}/channels"
            f"?session_id={self.client_id}"
        )
        if self.settings.token:
            endpoint += f"&token={self.settings.token}"
        return endpoint

    def _make_message(self, msg_type: str, content: dict, channel: str = "shell") -> dict:
        return {
            "header": {
                "msg_id": str(uuid.uuid4()),
                "msg_type": msg_type,
                "session": self.client_id,
                "username": self.username,
                "version": "5.2",
                "date": datetime.now(timezone.utc).isoformat(),
            },
            "parent_header": {},
            "metadata": {},
            "content": content,
            "channel": channel,
        }

    async def request_execute(self, code: str) -> "KernelFuture":
        """Send an execute_request and return the future that drains its replies."""
        websocket = await _connect_with_backoff(
            self.ws_endpoint, subprotocols=["kernel.v5.2"]
        )
        message = self._make_message(
            "execute_request",
            {
                "code": code,
                "silent": False,
                "store_history": True,
                "user_expressions": {},
                "allow_stdin": False,
                "stop_on_error": True,
            },
        )
        try:
            await websocket.send(json.dumps(message))
        except Exception:
            await websocket.close()
            raise
        debug_print(f"Sent execute_request {message['header']['msg_id']} to kernel {self.id}")
        return KernelFuture(websocket, message["header"]["msg_id"])


class KernelFuture:
    """
    One in-flight execute_request.

    The websocket is only read inside completed(), so a handler registered
    beforehand receives every IOPub message of the request, once each and in
    arrival order. completed() returns after both the execute_reply and the
    idle status have arrived.
    """

    def __init__(self, websocket, msg_id: str):
        self.websocket = websocket
        self.msg_id = msg_id
        self.on_iopub = None
        self.reply = None

    def register_iopub_handler(self, handler):
        self.on_iopub = handler

    async def completed(self) -> dict:
        reply_received = False
        execution_state_idle = False

        async with self.websocket:
            while not (reply_received and execution_state_idle):
                try:
                    message = await self.websocket.recv()
                except ConnectionClosed as e:
                    raise KernelError(
                        f"Kernel connection closed before execution completed: {e}"
                    ) from e

                msg = json.loads(message)
                if msg.get("parent_header", {}).get("msg_id") != self.msg_id:
                    continue

                msg_type = msg.get("header", {}).get("msg_type", "")
                channel = msg.get("channel", "iopub")
                debug_print(f"Received: {msg_type} on {channel}")

                if msg_type == "execute_reply":
                    self.reply = msg.get("content", {})
                    reply_received = True
                elif msg_type == "status":
                    if msg.get("content", {}).get("execution_state") == "idle":
                        execution_state_idle = True
                elif msg_type in LIFECYCLE_MESSAGES:
                    continue
                elif channel == "iopub" and self.on_iopub is not None:
                    self.on_iopub(msg)

        return self.reply


def new_notebook_model(name: str, path: str) -> dict:
    """An empty, not yet persisted notebook model."""
    now = datetime.now(timezone.utc).isoformat()
    return {
        "name": name,
        "path": path,
        "content": {
            "metadata": {"kernelspec": dict(KERNEL_SPEC)},
            "nbformat_minor": 5,
            "nbformat": 4,
            "cells": [],
        },
        "writable": True,
        "created": now,
        "last_modified": now,
        "mimetype": None,
        "format": "json",
        "type": "notebook",
    }


async def ensure_directory_structure(contents_manager: ContentsManager, path: str):
    """Walk `path` segment by segment, creating directories that do not exist yet."""
    current_path = ""
    for directory in [segment for segment in path.split("/") if segment]:
        model = await contents_manager.get(current_path)
        entries = model.get("content") or []
        if not any(
            entry.get("name") == directory and entry.get("type") == "directory"
            for entry in entries
        ):
            # The contents API only creates "Untitled Folder", so rename it
            untitled = await contents_manager.new_untitled(current_path, type="directory")
            await contents_manager.rename(
                untitled["path"], posixpath.join(current_path, directory)
            )
        current_path = posixpath.join(current_path, directory)


async def get_or_create_notebook(contents_manager: ContentsManager, notebook_path: str) -> dict:
    """
    Return the notebook at `notebook_path`, or a fresh in-memory one.

    The fresh notebook is not saved here; it is only written once code has run
    against it.
    """
    dirname = posixpath.dirname(notebook_path)
    await ensure_directory_structure(contents_manager, dirname)

    name = posixpath.basename(notebook_path)
    listing = await contents_manager.get(dirname)
    if any(
        entry.get("name") == name and entry.get("type") == "notebook"
        for entry in listing.get("content") or []
    ):
        debug_print(f"Using existing notebook: {notebook_path}")
        return await contents_manager.get(notebook_path)

    debug_print(f"Starting new notebook: {notebook_path}")
    return new_notebook_model(name, notebook_path)


async def get_or_create_python_session(
    session_manager: SessionManager, user_id: str, notebook_name: str, notebook_path: str
) -> SessionConnection:
    """Attach to the session bound to `notebook_path`, or start a python3 one."""
    if not session_manager.is_ready:
        await session_manager.ready()

    model = await session_manager.find_by_path(notebook_path)
    if model is not None:
        debug_print(f"Reusing session {model.get('id')} for {notebook_path}")
        return session_manager.connect_to(model, username=user_id)

    return await session_manager.start_new(
        {
            "name": notebook_name,
            "path": notebook_path,
            "type": "notebook",
            "kernel": {"name": KERNEL_NAME},
        },
        {"username": user_id},
    )


def process_message(msg: dict, outputs: list) -> tuple:
    """
    Record one IOPub message as a notebook output and return its
    (text, execution_count) contribution to the result.
    """
    msg_type = msg.get("header", {}).get("msg_type", "")
    content = msg.get("content", {})
    outputs.append({"output_type": msg_type, **content})

    if msg_type == EXECUTE_RESULT:
        text = content.get("data", {}).get("text/plain", "")
        if not isinstance(text, str):
            text = json.dumps(text)
        return text, content.get("execution_count")
    elif msg_type == DISPLAY_DATA:
        return "Image displayed.", None
    elif msg_type == STREAM:
        return content.get("text", ""), None
    elif msg_type == ERROR:
        return "\n".join(content.get("traceback", [])), None

    debug_print(f"Recorded {msg_type} output without text")
    return "", None


async def execute_code(session: SessionConnection, code: str) -> tuple:
    """
    Execute `code` on the session's kernel.

    Returns (result text, outputs in arrival order, execution count). The
    execution count is None unless the code produced an execute_result.
    """
    if session.kernel is None:
        raise ConfigurationError("Kernel is not defined")

    future = await session.kernel.request_execute(code)

    result = []
    outputs = []
    execution_count = None

    def on_iopub(msg):
        nonlocal execution_count
        text, count = process_message(msg, outputs)
        result.append(text)
        if count is not None:
            execution_count = count

    future.register_iopub_handler(on_iopub)
    reply = await future.completed()
    debug_print(f"Execution finished with status: {(reply or {}).get('status', 'unknown')}")

    return "".join(result), outputs, execution_count


def add_cell_to_notebook(model: dict, source: str, outputs: list, execution_count: int = None):
    """Append an executed code cell to a notebook model."""
    if model.get("type") != "notebook":
        raise TypeError("Model is not a notebook")

    model["content"]["cells"].append(
        {
            "cell_type": "code",
            "source": source,
            "metadata": {},
            "id": str(uuid.uuid4()),
            "outputs": outputs,
            "execution_count": execution_count,
        }
    )


def is_display_data(output: dict) -> bool:
    return output.get("output_type") == DISPLAY_DATA


def save_image(base64_image_data: str, images_dir) -> str:
    """Decode a base64 PNG into `images_dir` under a fresh name and return that name."""
    image_data = base64.b64decode(base64_image_data)
    image_name = f"{uuid.uuid4()}.png"
    images_dir = Path(images_dir)
    images_dir.mkdir(parents=True, exist_ok=True)
    (images_dir / image_name).write_bytes(image_data)
    return image_name


def save_images(outputs: list, images_dir) -> list:
    """Save every PNG display output and return markdown links to them."""
    markdown_images = []
    for output in outputs:
        if not is_display_data(output):
            continue
        image_output = output.get("data", {}).get(IMAGE_MIMETYPE)
        if image_output is None:
            debug_print("Skipping display data without a PNG payload")
            continue
        if isinstance(image_output, list):
            image_output = "".join(image_output)
        elif not isinstance(image_output, str):
            image_output = json.dumps(image_output)
        try:
            image_name = save_image(image_output, images_dir)
        except binascii.Error as e:
            debug_print(f"Skipping display data with an undecodable PNG payload: {e}")
            continue
        markdown_images.append(f"![Generated Image]({IMAGE_URL_PREFIX}/{image_name})")
    return markdown_images


def parse_tool_input(arg) -> str:
    """Accept either raw code or a {"code": ...} payload."""
    if isinstance(arg, str):
        return arg
    if isinstance(arg, dict):
        code = arg.get("code")
        if not code:
            raise ConfigurationError("Invalid tool input. Missing code property.")
        if not isinstance(code, str):
            raise ConfigurationError(
                f"Expected string input, but got {type(code).__name__}."
            )
        return code
    raise ConfigurationError(f"Expected string input, but got {type(arg).__name__}.")


class CodeInterpreter:
    """
    Runs code for one user's conversation in a persistent Jupyter notebook.

    The document store and session registry are injected; when they are not,
    they are built from CONFIG on the first run.
    """

    name = "python"
    description = (
        "When you send a message containing Python code to python, it will be "
        "executed in a stateful Jupyter notebook environment. Internet access for "
        "this session is disabled. Do not make external web requests or API calls "
        "as they will fail."
    )

    def __init__(
        self,
        user_id: str,
        conversation_id: str,
        tool_output_callback=None,
        contents_manager: ContentsManager = None,
        session_manager: SessionManager = None,
        images_dir=None,
    ):
        self.user_id = user_id
        self.conversation_id = conversation_id
        self.notebook_name = f"{conversation_id}.ipynb"
        self.notebook_path = posixpath.join(user_id, self.notebook_name)

        self.tool_output_callback = tool_output_callback
        self.contents_manager = contents_manager
        self.session_manager = session_manager
        self.images_dir = images_dir or CONFIG["IMAGES_DIR"]

    def _ensure_managers(self):
        if self.contents_manager is not None and self.session_manager is not None:
            return
        if CONFIG["JUPYTER_PER_USER"]:
            settings = create_server_settings_for_user(self.user_id)
        else:
            settings = create_server_settings()
        contents_manager, session_manager = initialize_managers(settings)
        if self.contents_manager is None:
            self.contents_manager = contents_manager
        if self.session_manager is None:
            self.session_manager = session_manager

    async def run(self, arg) -> str:
        """Execute the code in `arg` and return the result text. Never raises."""
        try:
            code = parse_tool_input(arg)
            self._ensure_managers()

            notebook_model = await get_or_create_notebook(
                self.contents_manager, self.notebook_path
            )
            session = await get_or_create_python_session(
                self.session_manager, self.user_id, self.notebook_name, self.notebook_path
            )

            result, outputs, execution_count = await execute_code(session, code)

            markdown_images = save_images(outputs, self.images_dir)
            if self.tool_output_callback is not None:
                self.tool_output_callback(markdown_images)

            add_cell_to_notebook(notebook_model, code, outputs, execution_count)
            await self.contents_manager.save(self.notebook_path, notebook_model)

            return result
        except Exception as e:
            logger.exception("Error executing code in %s", self.notebook_path)
            return f"Error executing code: {e}"

    async def __call__(self, arg) -> str:
        return await self.run(arg)


# Store and registry handles per user id, shared across conversations.
# Least recently used entries are evicted past CONFIG["MAX_CACHED_USERS"];
# they hold no open connections, so eviction needs no cleanup.
MANAGERS = OrderedDict()
MANAGERS_LOCK = asyncio.Lock()


async def get_managers(user_id: str) -> tuple:
    async with MANAGERS_LOCK:
        if user_id in MANAGERS:
            MANAGERS.move_to_end(user_id)
            return MANAGERS[user_id]

        if CONFIG["JUPYTER_PER_USER"]:
            settings = create_server_settings_for_user(user_id)
        else:
            settings = create_server_settings()
        MANAGERS[user_id] = initialize_managers(settings)
        while len(MANAGERS) > CONFIG["MAX_CACHED_USERS"]:
            evicted, _ = MANAGERS.popitem(last=False)
            debug_print(f"Evicted cached managers for {evicted}")
        return MANAGERS[user_id]


async def run_python(code: str, conversation_id: str, user_id: str = None) -> dict:
    """Run code for a conversation and collect the images it displayed."""
    user_id = user_id or CONFIG["DEFAULT_USER"]
    images = []
    try:
        contents_manager, session_manager = await get_managers(user_id)
    except ConfigurationError as e:
        logger.error("Cannot reach Jupyter server: %s", e)
        return {"output": f"Error executing code: {e}", "images": images}

    interpreter = CodeInterpreter(
        user_id,
        conversation_id,
        tool_output_callback=images.extend,
        contents_manager=contents_manager,
        session_manager=session_manager,
    )
    output = await interpreter.run(code)
    return {"output": output, "images": images}


def _cell_output_text(outputs: list) -> str:
    text = []
    for output in outputs:
        output_type = output.get("output_type")
        if output_type == STREAM:
            text.append(output.get("text", ""))
        elif output_type == ERROR:
            text.append(f"{output.get('ename', 'Error')}: {output.get('evalue', '')}")
        elif output_type == EXECUTE_RESULT:
            if "text/plain" in output.get("data", {}):
                text.append(output["data"]["text/plain"])
        elif output_type == DISPLAY_DATA:
            text.append("Image displayed.")
    return "".join(text)


async def read_conversation(conversation_id: str, user_id: str = None) -> dict:
    """Summarize the cells already executed for a conversation."""
    user_id = user_id or CONFIG["DEFAULT_USER"]
    notebook_path = posixpath.join(user_id, f"{conversation_id}.ipynb")
    contents_manager, _ = await get_managers(user_id)

    try:
        model = await contents_manager.get(notebook_path)
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 404:
            return {"path": notebook_path, "cells": []}
        raise

    cells = []
    for cell in model["content"]["cells"]:
        if cell.get("cell_type") != "code":
            continue
        source = cell.get("source", "")
        cells.append(
            {
                "source": "".join(source) if isinstance(source, list) else source,
                "output": _cell_output_text(cell.get("outputs", [])),
                "execution_count": cell.get("execution_count"),
            }
        )

    debug_print(f"Read notebook: {notebook_path} ({len(cells)} cells)")
    return {"path": notebook_path, "cells": cells}


@mcp.tool()
async def python(code: str, conversation_id: str, user_id: str = None) -> dict:
    """
    Execute Python code in the conversation's stateful Jupyter notebook.

    Variables, imports and loaded data persist between calls with the same
    conversation_id. Every call is recorded as a cell in
    `{user_id}/{conversation_id}.ipynb` on the Jupyter server.

    Args:
        code: Python code to execute
        conversation_id: Identifies the notebook and kernel to use
        user_id: Owner of the notebook (default: CODE_INTERPRETER_USER)

    Returns:
        dict: {
            "output": str,       # stdout, results and tracebacks, in order
            "images": list[str]  # markdown links to PNGs the code displayed
        }

    Examples:
        >>> python(code="x = 21", conversation_id="c1")
        {"output": "", "images": []}

        >>> python(code="x * 2", conversation_id="c1")
        {"output": "42", "images": []}

        >>> python(code="import matplotlib.pyplot as plt; plt.plot([1, 2]); plt.show()",
        ...        conversation_id="c1")
        {"output": "Image displayed.", "images": ["![Generated Image](/images/<id>.png)"]}

    Errors in the executed code come back as the traceback text in "output".
    Problems reaching Jupyter come back as "Error executing code: ...".
    """
    return await run_python(code, conversation_id, user_id)


@mcp.tool()
async def read_conversation_notebook(conversation_id: str, user_id: str = None) -> dict:
    """
    Read the code cells already executed for a conversation.

    Args:
        conversation_id: Identifies the notebook
        user_id: Owner of the notebook (default: CODE_INTERPRETER_USER)

    Returns:
        dict: {"path": str, "cells": [{"source": str, "output": str, "execution_count": int}]}

    A conversation that never ran code has no notebook yet and returns no cells.
    """
    return await read_conversation(conversation_id, user_id)


def main():
    # stdout carries the MCP stdio transport
    logging.basicConfig(
        level=logging.DEBUG if DEBUG else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        mcp.run()
    except KeyboardInterrupt:
        debug_print("Server stopped by user")
    except Exception as e:
        debug_print(f"Server error: {e}")
        raise


if __name__ == "__main__":
    main()
