import io

import pytest

from ubspectre.core.memory import BasicMemory
from ubspectre.core.solver import AddressStrategy, Z3AddressChooser
from ubspectre.logging import LogLevel, UbSpectreLogger, set_logger


@pytest.fixture(autouse=True)
def quiet_logger():
    """Every test gets a fresh logger that records entries but prints nothing."""
    logger = UbSpectreLogger(level=LogLevel.QUIET, color=False, stream=io.StringIO())
    set_logger(logger)
    yield logger


@pytest.fixture
def memory():
    return BasicMemory(chooser=Z3AddressChooser(AddressStrategy.LOWEST))
