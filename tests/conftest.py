"""Global pytest configuration and fixtures."""

import sys
import tempfile
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sf_time_machine.config import BackupConfig, FetcherConfig, TimeMachineConfig


@pytest.fixture
def temp_backup_dir():
    """Create temporary backup directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fast_config(temp_backup_dir):
    """Config writing into the temporary directory without retry delays."""
    return TimeMachineConfig(
        fetcher=FetcherConfig(retry_attempts=2, backoff_base=0.0, max_backoff=0.0, request_timeout=5.0),
        backup=BackupConfig(output_directory=str(temp_backup_dir))
    )
