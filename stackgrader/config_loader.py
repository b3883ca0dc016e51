"""
Configuration loader for stackgrader.

Handles parsing and validation of YAML run configuration files.
"""

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .config import REQUEST_TIMEOUT_SECONDS, SERVER_STARTUP_TIMEOUT_SECONDS, JUDGE_DELAY_SECONDS


class TargetConfig(BaseModel):
    """
    How to reach the project's HTTP server.
    """
    kind: Literal["auto", "wsgi", "command", "url"] = Field("auto", description="Loader to use")
    module: Optional[Path] = Field(None, description="Python file exposing a WSGI app (wsgi)")
    attribute: Optional[str] = Field(None, description="Attribute holding the app or app factory (wsgi)")
    command: Optional[list[str]] = Field(None, description="Command that starts the server (command)")
    base_url: Optional[str] = Field(None, description="Base URL of the server (command/url)")
    startup_timeout: float = Field(SERVER_STARTUP_TIMEOUT_SECONDS, gt=0, description="Seconds to wait for the server")
    reset_command: Optional[list[str]] = Field(None, description="Command resetting the backing store after each suite")
    env: dict[str, str] = Field(default_factory=dict, description="Extra environment for launched processes")


class GraderConfig(BaseModel):
    """
    Configuration model for the grader.
    """
    project_dir: Path = Field(..., description="Path to the student project to grade")
    rubric_path: Optional[Path] = Field(None, description="Rubric YAML (packaged rubric by default)")
    target: TargetConfig = Field(default_factory=TargetConfig, description="Target server settings")
    suites: Optional[list[str]] = Field(None, description="Subset of suite names to run")
    output_dir: Optional[Path] = Field(None, description="Directory for evaluation.json and CSV copies")

    skip_llm: bool = Field(False, description="Skip the GPT-4o judge")
    request_timeout: float = Field(REQUEST_TIMEOUT_SECONDS, gt=0, description="Per-request timeout in seconds")
    judge_delay: float = Field(JUDGE_DELAY_SECONDS, ge=0, description="Delay between judge calls in seconds")
    verbose: bool = Field(False, description="Enable debug logging")


def load_config(config_path: Path) -> GraderConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        GraderConfig object with loaded values.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        yaml.YAMLError: If config file is invalid YAML.
        ValidationError: If config data is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    # Resolve relative paths relative to the config file location
    config_dir = config_path.parent
    for path_field in ["project_dir", "rubric_path", "output_dir"]:
        if config_data.get(path_field):
            path = Path(config_data[path_field])
            if not path.is_absolute():
                config_data[path_field] = config_dir / path

    # The WSGI module is relative to the project, not the config file
    target = config_data.get("target") or {}
    if target.get("module") and "project_dir" in config_data:
        module = Path(target["module"])
        if not module.is_absolute():
            target["module"] = Path(config_data["project_dir"]) / module

    return GraderConfig(**config_data)
