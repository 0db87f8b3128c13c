import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from oligofold import params  # noqa: E402


@pytest.fixture(autouse=True)
def default_parameter_set():
    """Every test starts and ends on the default parameter set."""
    params.set_parameter_set(params.DEFAULT_PARAMETER_SET)
    yield
    params.set_parameter_set(params.DEFAULT_PARAMETER_SET)
