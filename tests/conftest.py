"""Pytest fixtures for lambda-reconciler tests."""

import pytest
from moto import mock_aws

# Pytest hooks for --run-aws flag


def pytest_addoption(parser):
    """Add --run-aws pytest option."""
    parser.addoption(
        "--run-aws",
        action="store_true",
        default=False,
        help="Run tests against real AWS (requires valid credentials)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip AWS tests unless --run-aws flag is provided."""
    if not config.getoption("--run-aws"):
        skip_aws = pytest.mark.skip(reason="Need --run-aws option to run")
        for item in items:
            if "aws" in item.keywords:
                item.add_marker(skip_aws)


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    # moto>=5 only provides AWS managed IAM policies when asked to
    monkeypatch.setenv("MOTO_IAM_LOAD_MANAGED_POLICIES", "true")
    # Unset AWS_ENDPOINT_URL to ensure moto intercepts requests
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


@pytest.fixture
def mock_aws_env(aws_credentials):
    """Mock Lambda, IAM and S3 for tests."""
    with mock_aws():
        yield


@pytest.fixture
def source_tree(tmp_path):
    """A small function source directory."""
    root = tmp_path / "src"
    (root / "lib").mkdir(parents=True)
    (root / "handler.py").write_text("def handler(event, context):\n    return event\n")
    (root / "lib" / "util.py").write_text("VALUE = 1\n")
    (root / ".env").write_text("STAGE=dev\n")
    return root
