# ABOUTME: Pytest fixtures for CLI key management tests
# ABOUTME: Points the CLI at a temporary file-backed SQLite database

from unittest.mock import patch

import pytest

from apiplatform.config import Settings


@pytest.fixture
def cli_settings(tmp_path):
    """
    Settings whose database lives in a fresh temp directory.

    The nested path also checks that the CLI creates missing parent directories.
    """
    settings = Settings(database_url=f"sqlite:///{tmp_path}/nested/cli.db")
    with patch('apiplatform.cli.manage_keys.get_settings', return_value=settings):
        yield settings
