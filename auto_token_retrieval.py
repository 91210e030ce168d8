#!/usr/bin/env python3
"""
Find a Jupyter token without asking the user for it.

Used by jupyter_code_interpreter when JUPYTER_TOKEN is not set, and runnable
on its own to check which token a deployment will pick up.
"""

import json
import os
import re
import sys
from pathlib import Path

RUNTIME_DIR = Path.home() / ".local/share/jupyter/runtime"
CONFIG_DIR = Path.home() / ".jupyter"

# jupyter_server writes jpserver-*.json, the classic notebook server nbserver-*.json
RUNTIME_PATTERNS = ("jpserver-*.json", "nbserver-*.json")
CONFIG_FILES = ("jupyter_server_config.py", "jupyter_notebook_config.py")

TOKEN_PATTERN = re.compile(
    r'c\.(ServerApp|NotebookApp|IdentityProvider)\.token\s*=\s*["\']([^"\']+)["\']'
)


def get_token_from_runtime_files(runtime_dir: Path = None):
    """Check runtime files of running servers, newest first"""
    runtime_dir = Path(runtime_dir) if runtime_dir else RUNTIME_DIR
    if not runtime_dir.exists():
        return None

    server_files = []
    for pattern in RUNTIME_PATTERNS:
        server_files.extend(runtime_dir.glob(pattern))
    server_files.sort(key=lambda x: x.stat().st_mtime, reverse=True)

    for server_file in server_files:
        try:
            data = json.loads(server_file.read_text())
        except (OSError, ValueError):
            continue
        token = data.get("token")
        if token:
            return {
                "token": token,
                "url": data.get("url", "http://localhost:8888"),
                "source": f"runtime file: {server_file.name}",
            }
    return None


def get_token_from_config(config_dir: Path = None):
    """Check Jupyter config files for a hardcoded token"""
    config_dir = Path(config_dir) if config_dir else CONFIG_DIR

    for config_name in CONFIG_FILES:
        config_path = config_dir / config_name
        if not config_path.exists():
            continue
        try:
            content = config_path.read_text()
        except OSError:
            continue
        token_match = TOKEN_PATTERN.search(content)
        if token_match:
            return {
                "token": token_match.group(2),
                "url": "http://localhost:8888",
                "source": f"config file: {config_path.name}",
            }
    return None


def find_token(runtime_dir: Path = None, config_dir: Path = None):
    """Return the first token found, environment first, or None"""
    if os.environ.get("JUPYTER_TOKEN"):
        return {
            "token": os.environ["JUPYTER_TOKEN"],
            "url": f"{os.environ.get('JUPYTER_PROTOCOL', 'http')}://{os.environ.get('JUPYTER_HOST', 'localhost')}:{os.environ.get('JUPYTER_PORT', '8888')}",
            "source": "environment variable",
        }

    return get_token_from_runtime_files(runtime_dir) or get_token_from_config(config_dir)


def main():
    result = find_token()
    if result:
        print(json.dumps(result))
        return 0

    print(json.dumps({
        "error": "No Jupyter token found",
        "suggestions": [
            "Start Jupyter with: jupyter lab",
            "Set JUPYTER_TOKEN environment variable",
            "Use --ServerApp.token=<token> when starting Jupyter",
        ]
    }), file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
