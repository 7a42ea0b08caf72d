import logging
from unittest import mock

import pytest


# Tests that set up logging replace the process wide excepthook.
@pytest.fixture(autouse=True)
def restore_excepthook():
    with mock.patch("sys.excepthook"):
        yield


@pytest.fixture(autouse=True)
def reset_root_logger():
    handlers = list(logging.getLogger().handlers)
    level = logging.getLogger().level
    yield
    logging.getLogger().handlers = handlers
    logging.getLogger().setLevel(level)
