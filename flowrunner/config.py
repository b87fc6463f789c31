"""Project configuration loading.

Configuration lives in ``.flowrunner/config.yaml`` under the project root.
A missing file means defaults. Environment variables override the file:

- FLOWRUNNER_API_BASE_URL: base URL for remote call templates
- FLOWRUNNER_SETTLE_DELAY: seconds to wait between queue-mode nodes
"""

import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_DIR = ".flowrunner"
CONFIG_FILE = "config.yaml"

DEFAULT_API_BASE_URL = "https://python-executor-487010489347.us-central1.run.app"
DEFAULT_ENTRY_NODE_ID = "input-node"


class ConfigError(Exception):
    """Configuration file is invalid."""

    pass


class CallTemplate(BaseModel):
    """A preset remote request used to execute a non-entry queue node."""

    name: str
    method: Literal["GET", "POST"]
    path: str
    # JSON body for POST requests; {"script": ...} for the execute endpoint
    payload: dict[str, Any] | None = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"Template path must start with '/': {v}")
        return v


DEFAULT_CALL_TEMPLATES: list[CallTemplate] = [
    CallTemplate(name="Health Check", method="GET", path="/health"),
    CallTemplate(
        name="Basic Function Test",
        method="POST",
        path="/execute",
        payload={
            "script": (
                "def main():\n"
                '    return {"message": "Hello from Cloud Run!", "status": "success"}'
            )
        },
    ),
    CallTemplate(
        name="Library Test",
        method="POST",
        path="/execute",
        payload={
            "script": (
                "import pandas as pd\n"
                "import numpy as np\n"
                "\n"
                "def main():\n"
                "    arr = np.array([1, 2, 3, 4, 5])\n"
                '    df = pd.DataFrame({"numbers": arr})\n'
                '    return {"mean": float(np.mean(arr)), "sum": int(np.sum(arr)), '
                '"dataframe_shape": df.shape}'
            )
        },
    ),
    CallTemplate(
        name="Stdout Capture Test",
        method="POST",
        path="/execute",
        payload={
            "script": (
                "def main():\n"
                '    print("Processing data...")\n'
                '    print("Calculation complete!")\n'
                '    return {"result": "success", "value": 42}'
            )
        },
    ),
]


class FlowrunnerConfig(BaseModel):
    """Runtime settings shared by the executors and the CLI."""

    api_base_url: str = DEFAULT_API_BASE_URL
    request_timeout: float = Field(default=30.0, gt=0)
    settle_delay: float = Field(default=1.0, ge=0)
    entry_node_id: str = DEFAULT_ENTRY_NODE_ID
    script_timeout: float | None = Field(default=None, gt=0)
    log_prefix: str = "[Node Execution]:"
    call_templates: list[CallTemplate] = Field(
        default_factory=lambda: [t.model_copy() for t in DEFAULT_CALL_TEMPLATES],
        min_length=1,
    )

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


def default_config_path(root: Path | None = None) -> Path:
    return (root or Path.cwd()) / CONFIG_DIR / CONFIG_FILE


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    base_url = os.environ.get("FLOWRUNNER_API_BASE_URL")
    if base_url:
        data["api_base_url"] = base_url
    settle_delay = os.environ.get("FLOWRUNNER_SETTLE_DELAY")
    if settle_delay:
        try:
            data["settle_delay"] = float(settle_delay)
        except ValueError as e:
            raise ConfigError(f"FLOWRUNNER_SETTLE_DELAY must be a number: {settle_delay!r}") from e
    return data


def load_config(path: str | Path | None = None) -> FlowrunnerConfig:
    """Load configuration from YAML, falling back to defaults.

    Args:
        path: Config file path (default: ./.flowrunner/config.yaml)

    Raises:
        ConfigError: If the file exists but is not valid YAML or fails validation.
    """
    config_path = Path(path) if path else default_config_path()
    data: dict[str, Any] = {}

    if config_path.exists():
        try:
            loaded = yaml.safe_load(config_path.read_text())
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in '{config_path}': {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(
                f"Invalid config in '{config_path}'. Expected a mapping, "
                f"got {type(loaded).__name__}."
            )
        data = loaded or {}
    elif path:
        raise ConfigError(f"Config file not found: {config_path}")
    else:
        logger.debug("No config at %s, using defaults", config_path)

    data = _apply_env_overrides(dict(data))
    try:
        return FlowrunnerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in '{config_path}': {e}") from e


DEFAULT_CONFIG_YAML = """# flowrunner configuration
# Base URL for remote call templates used by queue-mode nodes
api_base_url: {api_base_url}

# Seconds to wait between queue-mode nodes (0 disables)
settle_delay: 1.0

# Per-request timeout (seconds)
request_timeout: 30.0

# Id of the entry node that always runs first in queue mode
entry_node_id: {entry_node_id}

# Optional per-script timeout (seconds); null disables
script_timeout: null
""".format(api_base_url=DEFAULT_API_BASE_URL, entry_node_id=DEFAULT_ENTRY_NODE_ID)
