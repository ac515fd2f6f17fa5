"""
Configuration loading and validation for Endpoint Flow Diff.

This module handles configuration file parsing, validation, and provides
sensible defaults for all configuration options.
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class ParserConfig(BaseModel):
    """Configuration for source discovery and the language front ends."""
    
    include_patterns: list[str] = Field(
        default=["**/*.py", "**/*.java"],
        description="Glob patterns for files to include in analysis.",
    )
    exclude_patterns: list[str] = Field(
        default=[
            "**/test_*.py",
            "**/*_test.py",
            "**/tests/**",
            "**/__pycache__/**",
            "**/src/test/**",
        ],
        description="Glob patterns for files to exclude from analysis.",
    )
    route_owners: list[str] = Field(
        default=["app", "router", "api", "application"],
        description="Names of FastAPI app/router variables carrying routes.",
    )


class ExtractionConfig(BaseModel):
    """Configuration for outbound call recognition."""
    
    client_factories: list[str] = Field(
        default=[
            "ClientBuilder.newClient",
            "ClientBuilder.newBuilder",
            "HttpClient.newHttpClient",
            "RestTemplate",
            "WebClient.create",
            "httpx.Client",
            "httpx.AsyncClient",
            "requests.Session",
            "requests.session",
            "aiohttp.ClientSession",
        ],
        description="Dotted callees that construct an HTTP client handle.",
    )
    module_clients: list[str] = Field(
        default=["requests", "httpx"],
        description="Modules whose verb functions issue requests directly.",
    )
    request_verbs: list[str] = Field(
        default=["get", "post", "put", "delete", "patch", "head", "options"],
        description="Method names that issue a request with that HTTP verb.",
    )
    generic_request_methods: list[str] = Field(
        default=["request", "method", "exchange"],
        description="Methods issuing a request whose verb is their first argument.",
    )
    target_methods: list[str] = Field(
        default=["target", "path", "resolve", "uri", "url"],
        description="Chained methods whose string argument names the target.",
    )
    max_depth: int = Field(
        default=3,
        ge=0,
        description="How many levels of same-class or same-module helper calls to follow.",
    )


class DiffConfig(BaseModel):
    """Configuration for the diff engine."""
    
    report_guard_reorder: bool = Field(
        default=False,
        description="Report reordered but otherwise unchanged guards.",
    )
    detect_threshold_changes: bool = Field(
        default=True,
        description="Pair guards differing only in literal values as modified.",
    )


class AnalysisConfig(BaseModel):
    """Configuration for the analysis run."""
    
    max_workers: Optional[int] = Field(
        default=None,
        ge=1,
        description="Worker threads for extraction and diffing (default: CPU count, max 8).",
    )
    parallel_threshold: int = Field(
        default=10,
        ge=1,
        description="Batches smaller than this run sequentially.",
    )


class OutputConfig(BaseModel):
    """Configuration for output formatting."""
    
    colorize: bool = Field(
        default=True,
        description="Use colors in terminal output.",
    )
    show_unchanged: bool = Field(
        default=False,
        description="List matched endpoints without changes.",
    )
    verbose: bool = Field(
        default=False,
        description="Enable verbose output.",
    )


class Config(BaseModel):
    """Root configuration model for Endpoint Flow Diff."""
    
    parser: ParserConfig = Field(default_factory=ParserConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    diff: DiffConfig = Field(default_factory=DiffConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    
    class Config:
        """Pydantic model configuration."""
        
        extra = "forbid"


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from a YAML file.
    
    Args:
        config_path: Path to the configuration file. If None, returns defaults.
        
    Returns:
        Config object with loaded or default values.
        
    Raises:
        FileNotFoundError: If the specified config file doesn't exist.
        ValueError: If the config file is invalid.
    """
    if config_path is None:
        return Config()
    
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    
    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return Config(**data)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in configuration file: {e}") from e
    except Exception as e:
        raise ValueError(f"Failed to load configuration: {e}") from e


def find_config_file(start_path: Path) -> Optional[Path]:
    """
    Search for a configuration file starting from the given path.
    
    Searches for `.flow-diff.yaml` or `.flow-diff.yml` in the start path
    and parent directories.
    
    Args:
        start_path: Directory to start searching from.
        
    Returns:
        Path to the config file if found, None otherwise.
    """
    config_names = [".flow-diff.yaml", ".flow-diff.yml"]
    
    current = start_path.resolve()
    while current != current.parent:
        for name in config_names:
            config_path = current / name
            if config_path.exists():
                return config_path
        current = current.parent
    
    return None
