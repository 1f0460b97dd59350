from pathlib import Path

import pytest

from accountmap.observability.log import configure_logging

LOGGING_CONFIG = Path(__file__).resolve().parents[1] / "config" / "logging.yaml"


@pytest.fixture(autouse=True)
def _logging():
    configure_logging(LOGGING_CONFIG)
