import logging
from collections.abc import Iterator

import pytest

from stepwright.graph import TaskDeclaration
from stepwright.logging_setup import LOGGER_NAME


@pytest.fixture(autouse=True)
def _reset_stepwright_logger() -> Iterator[None]:
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def diamond() -> list[TaskDeclaration]:
    return [
        TaskDeclaration(id=1, title="Scaffold"),
        TaskDeclaration(id=2, title="Auth", depends_on=(1,)),
        TaskDeclaration(id=3, title="API", depends_on=(1,)),
        TaskDeclaration(id=4, title="Dashboard", depends_on=(2, 3)),
    ]
