import sys

import pytest
from loguru import logger


@pytest.fixture(autouse=True)
def _reset_loguru():
    # The CLI reconfigures loguru against whatever sys.stderr is at the time.
    yield
    logger.remove()
    logger.add(sys.stderr)
