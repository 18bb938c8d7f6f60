import os
import sys
from pathlib import Path

import pytest

# Fail fast if Python version is unsupported (PEP 604 unions require 3.10+)
if sys.version_info < (3, 10):
    print(
        f"ERROR: This project requires Python 3.10+ (found {sys.version.split()[0]}).",
        file=sys.stderr,
    )
    sys.exit(1)


ROOT_DIR = Path(__file__).parent.absolute()
src_dir = ROOT_DIR / "src"

if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def _isolated_aws_env(request, monkeypatch):
    """Keep unit tests off real AWS credentials, regions and OTEL exporters."""
    if request.node.get_closest_marker("integration"):
        return
    for name in (
        "AWS_PROFILE",
        "AWS_REGION",
        "ATHENA_ROLE_ARN",
        "ATHENA_OUTPUT_LOCATION",
        "ATHENA_WORKGROUP",
        "ATHENA_ACCESS_KEY_ID",
        "ATHENA_SECRET_ACCESS_KEY",
        "ATHENA_SESSION_TOKEN",
        "ATHENA_TRACE_QUERIES",
        "OTEL_EXPORTER_OTLP_ENDPOINT",
        "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv("AWS_EC2_METADATA_DISABLED", "true")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION_TESTS=1."""
    run_integration = os.getenv("RUN_INTEGRATION_TESTS", "0") == "1"

    skip_integration = pytest.mark.skip(
        reason="Skipping integration tests (set RUN_INTEGRATION_TESTS=1 to run)"
    )
    for item in items:
        if item.get_closest_marker("integration") and not run_integration:
            item.add_marker(skip_integration)
