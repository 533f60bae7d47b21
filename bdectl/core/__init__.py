"""Core bdectl functionality."""

from bdectl.core.config import Settings, load_settings
from bdectl.core.context import Context
from bdectl.core.discovery import Script, discover_scripts
from bdectl.core.logging import ScriptLogger, get_log_path, query_logs
from bdectl.core.metadata import MetadataError, parse_metadata
from bdectl.core.output import Output

__all__ = [
    "Context",
    "MetadataError",
    "Output",
    "Script",
    "ScriptLogger",
    "Settings",
    "discover_scripts",
    "get_log_path",
    "load_settings",
    "parse_metadata",
    "query_logs",
]
