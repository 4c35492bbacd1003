"""Utility functions for backup run directories."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from .._utils import format_timestamp, logger

MANIFEST_FILENAME = "backup-manifest.json"

CONTENT_TYPE_EXTENSIONS = {
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "text/plain": ".txt",
    "text/csv": ".csv",
}


def generate_run_name(prefix: str, timestamp: datetime) -> str:
    """Generate a run directory name from its creation timestamp.

    Returns:
        Name in format: <prefix>-YYYY-MM-DDTHH-MM-SS-mmmZ
    """
    safe_timestamp = format_timestamp(timestamp).replace(":", "-").replace(".", "-")
    return f"{prefix}-{safe_timestamp}"


def get_file_extension(content_type: Any) -> str:
    """Map a MIME content type to a file extension, ``.bin`` when unknown."""
    return CONTENT_TYPE_EXTENSIONS.get(content_type, ".bin")


def save_json(data: Any, output_path: Path) -> None:
    """Write JSON to file, creating parent directories."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)


def load_json(input_path: Path) -> Any:
    with open(input_path, "r", encoding="utf-8") as f:
        return json.load(f)


async def save_manifest(manifest: Dict[str, Any], output_path: Path) -> None:
    """Save manifest JSON to file.

    Args:
        manifest: Manifest dictionary
        output_path: Output file path
    """
    save_json(manifest, output_path)
    logger.debug(f"Manifest saved: {output_path}")
