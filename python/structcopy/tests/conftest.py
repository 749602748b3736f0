import pytest
import typing

import structcopy.lib


@pytest.fixture(autouse=True)
def _structcopy_settings_fixture() -> typing.Generator[None, None, None]:
    """Start and end every test without process-wide settings."""

    structcopy.lib.stop()
    yield
    structcopy.lib.stop()
