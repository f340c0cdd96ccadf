"""Unit test fixtures built on the in-memory AWS fakes."""

import pytest

from tests.fixtures.fakes import FakeIamClient, FakeLambdaClient, FakeStorage, fake_clients


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_lambda(fake_storage):
    """Lambda fake that resolves S3 code against ``fake_storage``."""
    return FakeLambdaClient(objects=fake_storage.objects)


@pytest.fixture
def fake_iam():
    return FakeIamClient()


@pytest.fixture
def clients(fake_lambda, fake_iam, fake_storage):
    """Reconciler clients backed by fakes, without a layer packager."""
    return fake_clients(fake_lambda, fake_iam, fake_storage)
