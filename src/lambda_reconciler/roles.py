"""Execution role lifecycle for functions deployed without an explicit role."""

from __future__ import annotations

import json
import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import RoleProvisioningFailedError
from .naming import role_name_for, role_name_from_arn

logger = logging.getLogger(__name__)

BASIC_EXECUTION_POLICY_ARN = "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole"
ASSUME_ROLE_SERVICE = "lambda.amazonaws.com"
NO_SUCH_ENTITY = "NoSuchEntity"


def assume_role_policy() -> dict[str, Any]:
    """Trust policy that lets only the Lambda service assume the role."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": [ASSUME_ROLE_SERVICE]},
                "Action": "sts:AssumeRole",
            }
        ],
    }


def _is_not_found(e: ClientError) -> bool:
    return e.response["Error"]["Code"] == NO_SUCH_ENTITY


class RoleManager:
    """
    Ensures an execution role exists, and removes it when superseded.

    The role name is derived from the function name, so a second run finds
    the role created by the first instead of creating another one.
    """

    def __init__(self, iam_client: Any) -> None:
        self._client = iam_client

    def get_role_arn(self, role_name: str) -> str | None:
        """Look up a role by name. Returns None if it does not exist."""
        try:
            response = self._client.get_role(RoleName=role_name)
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise RoleProvisioningFailedError(role_name, e) from e
        except BotoCoreError as e:
            raise RoleProvisioningFailedError(role_name, e) from e
        return str(response["Role"]["Arn"])

    def ensure_role(self, function_name: str) -> str:
        """
        Return the ARN of the function's execution role, creating it if needed.

        Args:
            function_name: Function the role is created for

        Returns:
            Role ARN

        Raises:
            RoleProvisioningFailedError: If lookup, creation or policy attachment fails
        """
        role_name = role_name_for(function_name)
        existing = self.get_role_arn(role_name)
        if existing is not None:
            logger.debug("Reusing execution role %s", existing)
            return existing

        logger.info("Creating execution role %s with basic execution rights", role_name)
        try:
            response = self._client.create_role(
                RoleName=role_name,
                Path="/",
                AssumeRolePolicyDocument=json.dumps(assume_role_policy()),
                Description=f"Execution role for Lambda function {function_name}",
            )
            self._client.attach_role_policy(
                RoleName=role_name,
                PolicyArn=BASIC_EXECUTION_POLICY_ARN,
            )
        except (ClientError, BotoCoreError) as e:
            raise RoleProvisioningFailedError(role_name, e) from e

        return str(response["Role"]["Arn"])

    def remove_role(self, role_arn: str) -> None:
        """
        Detach the basic execution policy and delete the role.

        Each step treats an already-missing policy attachment or role as done.

        Raises:
            RoleProvisioningFailedError: On any error other than NoSuchEntity
        """
        role_name = role_name_from_arn(role_arn)
        logger.info("Removing execution role %s", role_name)

        try:
            self._client.detach_role_policy(
                RoleName=role_name,
                PolicyArn=BASIC_EXECUTION_POLICY_ARN,
            )
        except ClientError as e:
            if not _is_not_found(e):
                raise RoleProvisioningFailedError(role_name, e) from e
        except BotoCoreError as e:
            raise RoleProvisioningFailedError(role_name, e) from e

        try:
            self._client.delete_role(RoleName=role_name)
        except ClientError as e:
            if not _is_not_found(e):
                raise RoleProvisioningFailedError(role_name, e) from e
            logger.debug("Role %s already deleted", role_name)
        except BotoCoreError as e:
            raise RoleProvisioningFailedError(role_name, e) from e
