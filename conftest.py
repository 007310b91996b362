import sys
import os
import pytest
from pathlib import Path

# Add the src directory to Python path for imports
backend_dir = Path(__file__).parent
src_dir = backend_dir / "src"
sys.path.insert(0, str(src_dir))
sys.path.insert(0, str(backend_dir))

# boto3 needs a region even when every table call is mocked
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")


def pytest_configure(config):
    """
    Register custom markers
    """
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )


@pytest.fixture(autouse=True)
def _clear_recurring_env(monkeypatch):
    """Keep RECURRING_* overrides from the shell out of the tests."""
    for name in list(os.environ):
        if name.startswith("RECURRING_"):
            monkeypatch.delenv(name, raising=False)


# Configure test paths
pytest_plugins = []
