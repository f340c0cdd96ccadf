"""Tests for execution role provisioning."""

import json
from unittest.mock import MagicMock

import boto3
import pytest

from lambda_reconciler.exceptions import RoleProvisioningFailedError
from lambda_reconciler.roles import (
    BASIC_EXECUTION_POLICY_ARN,
    RoleManager,
    assume_role_policy,
)
from tests.fixtures.fakes import client_error


@pytest.fixture
def iam(mock_aws_env):
    return boto3.client("iam", region_name="us-east-1")


class TestAssumeRolePolicy:
    def test_only_lambda_may_assume(self):
        (statement,) = assume_role_policy()["Statement"]
        assert statement["Principal"] == {"Service": ["lambda.amazonaws.com"]}
        assert statement["Action"] == "sts:AssumeRole"


class TestRoleManagerMoto:
    """RoleManager against moto IAM."""

    def test_ensure_role_creates_role(self, iam):
        arn = RoleManager(iam).ensure_role("fn1")

        role = iam.get_role(RoleName="fn1-role")["Role"]
        assert role["Arn"] == arn
        document = role["AssumeRolePolicyDocument"]
        if isinstance(document, str):
            document = json.loads(document)
        assert document["Statement"][0]["Principal"] == {"Service": ["lambda.amazonaws.com"]}

        attached = iam.list_attached_role_policies(RoleName="fn1-role")["AttachedPolicies"]
        assert [p["PolicyArn"] for p in attached] == [BASIC_EXECUTION_POLICY_ARN]

    def test_ensure_role_is_idempotent(self, iam):
        manager = RoleManager(iam)

        first = manager.ensure_role("fn1")
        second = manager.ensure_role("fn1")

        assert first == second
        assert len(iam.list_roles()["Roles"]) == 1

    def test_remove_role(self, iam):
        manager = RoleManager(iam)
        arn = manager.ensure_role("fn1")

        manager.remove_role(arn)

        assert manager.get_role_arn("fn1-role") is None

    def test_remove_missing_role_is_done(self, iam):
        RoleManager(iam).remove_role("arn:aws:iam::123456789012:role/missing-role")

    def test_get_role_arn_missing(self, iam):
        assert RoleManager(iam).get_role_arn("missing-role") is None


class TestRoleManagerErrors:
    """Errors other than NoSuchEntity are raised."""

    def test_lookup_denied(self):
        client = MagicMock()
        client.get_role.side_effect = client_error("AccessDenied", "GetRole")

        with pytest.raises(RoleProvisioningFailedError) as exc_info:
            RoleManager(client).ensure_role("fn1")

        assert exc_info.value.role_name == "fn1-role"
        assert exc_info.value.error_code == "AccessDenied"
        client.create_role.assert_not_called()

    def test_attach_failure(self):
        client = MagicMock()
        client.get_role.side_effect = client_error("NoSuchEntity", "GetRole")
        client.attach_role_policy.side_effect = client_error("LimitExceeded")

        with pytest.raises(RoleProvisioningFailedError):
            RoleManager(client).ensure_role("fn1")

    def test_detach_missing_still_deletes(self):
        client = MagicMock()
        client.detach_role_policy.side_effect = client_error("NoSuchEntity")

        RoleManager(client).remove_role("arn:aws:iam::123456789012:role/fn1-role")

        client.delete_role.assert_called_once_with(RoleName="fn1-role")

    def test_delete_conflict_raises(self):
        client = MagicMock()
        client.delete_role.side_effect = client_error("DeleteConflict")

        with pytest.raises(RoleProvisioningFailedError):
            RoleManager(client).remove_role("arn:aws:iam::123456789012:role/fn1-role")
