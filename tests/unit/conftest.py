"""Shared fixtures for unit tests."""

from pathlib import Path

import pytest

from stackplan.core.settings import (
    AWSSettings,
    NetworkSettings,
    RetrySettings,
    ServiceSettings,
    StackPlanSettings,
)


@pytest.fixture
def retry() -> RetrySettings:
    """Three attempts without waiting between them."""
    return RetrySettings(attempts=3, wait_seconds=0)


@pytest.fixture
def settings(tmp_path: Path, retry: RetrySettings) -> StackPlanSettings:
    """Default stack settings with state kept under a temporary directory."""
    return StackPlanSettings(
        state_file=tmp_path / "state.json",
        aws=AWSSettings(region="ap-northeast-1", profile=None),
        network=NetworkSettings(),
        service=ServiceSettings(project_name="demo"),
        retry=retry,
    )
