"""Entry-point script discovery."""

from dataclasses import dataclass
from pathlib import Path

from bdectl.core.metadata import MetadataError, parse_metadata

SCRIPTS_DIR = Path(__file__).resolve().parent.parent / "scripts"


@dataclass
class Script:
    """Represents a discovered bdectl entry-point script."""

    name: str
    path: Path
    category: str
    tags: list[str]
    brief: str
    requires: list[str] | None = None
    privilege: str | None = None

    @classmethod
    def from_path(cls, path: Path) -> "Script | None":
        """
        Create Script from file path.

        Returns:
            Script instance, or None if no valid metadata
        """
        try:
            content = path.read_text(encoding="utf-8")
        except OSError:
            return None

        try:
            metadata = parse_metadata(content)
        except MetadataError:
            return None

        if metadata is None:
            return None

        return cls(
            name=path.stem,
            path=path,
            category=metadata["category"],
            tags=metadata["tags"],
            brief=metadata["brief"],
            requires=metadata.get("requires"),
            privilege=metadata.get("privilege"),
        )


def discover_scripts(directory: Path = SCRIPTS_DIR) -> list[Script]:
    """
    Discover all bdectl scripts in directory.

    Args:
        directory: Root directory to search (default: bundled scripts)

    Returns:
        List of discovered Script objects, sorted by name
    """
    scripts = []

    for path in directory.rglob("*.py"):
        if path.is_file():
            script = Script.from_path(path)
            if script is not None:
                scripts.append(script)

    return sorted(scripts, key=lambda s: s.name)
