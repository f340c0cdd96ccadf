"""Lambda compute provider adapter.

Thin mapping from ``DesiredConfig`` onto the Lambda API. Every failure is
raised as ``ProviderCallFailedError`` except not-found on delete, which
counts as already done.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import ProviderCallFailedError
from .models import Artifact, DesiredConfig

logger = logging.getLogger(__name__)

NOT_FOUND_CODE = "ResourceNotFoundException"


@dataclass(frozen=True)
class DeployResult:
    """ARN and code hash Lambda reports after a create or update call."""

    arn: str
    content_hash: str


def _config_params(config: DesiredConfig) -> dict[str, Any]:
    params: dict[str, Any] = {
        "FunctionName": config.name,
        "Description": config.description,
        "Handler": config.handler,
        "MemorySize": config.memory,
        "Role": config.effective_role,
        "Runtime": config.runtime,
        "Timeout": config.timeout,
        "Environment": {"Variables": dict(config.env)},
    }
    if config.layer is not None:
        params["Layers"] = [config.layer.arn]
    return params


def _code_params(artifact: Artifact, bucket: str | None, s3_key: str | None) -> dict[str, Any]:
    if bucket and s3_key:
        return {"S3Bucket": bucket, "S3Key": s3_key}
    return {"ZipFile": artifact.path.read_bytes()}


class ComputeProvider:
    """Issues create/update/delete/publish calls against Lambda."""

    def __init__(self, lambda_client: Any) -> None:
        self._client = lambda_client

    def _call(self, operation: str, target: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return fn(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise ProviderCallFailedError(operation, target, e) from e

    def create_function(
        self,
        config: DesiredConfig,
        artifact: Artifact,
        s3_key: str | None = None,
    ) -> DeployResult:
        """Create the function with its full configuration and code."""
        params = _config_params(config)
        params["Code"] = _code_params(artifact, config.bucket, s3_key)
        params["Publish"] = True
        response = self._call(
            "create_function", config.name, self._client.create_function, **params
        )
        return DeployResult(arn=response["FunctionArn"], content_hash=response["CodeSha256"])

    def update_function_code(
        self,
        config: DesiredConfig,
        artifact: Artifact,
        s3_key: str | None = None,
    ) -> DeployResult:
        """Replace the function code. The returned hash is what Lambda stored."""
        params: dict[str, Any] = {"FunctionName": config.name, "Publish": True}
        params.update(_code_params(artifact, config.bucket, s3_key))
        response = self._call(
            "update_function_code", config.name, self._client.update_function_code, **params
        )
        return DeployResult(arn=response["FunctionArn"], content_hash=response["CodeSha256"])

    def update_function_configuration(self, config: DesiredConfig) -> DeployResult:
        response = self._call(
            "update_function_configuration",
            config.name,
            self._client.update_function_configuration,
            **_config_params(config),
        )
        return DeployResult(arn=response["FunctionArn"], content_hash=response["CodeSha256"])

    def delete_function(self, name: str) -> bool:
        """
        Delete a function.

        Returns:
            True if deleted, False if it did not exist
        """
        try:
            self._client.delete_function(FunctionName=name)
        except ClientError as e:
            if e.response["Error"]["Code"] == NOT_FOUND_CODE:
                logger.debug("Function %s already deleted", name)
                return False
            raise ProviderCallFailedError("delete_function", name, e) from e
        except BotoCoreError as e:
            raise ProviderCallFailedError("delete_function", name, e) from e
        return True

    def publish_version(self, name: str, code_sha256: str | None = None) -> str:
        """Publish a version. ``code_sha256`` guards against racing code changes."""
        params: dict[str, Any] = {"FunctionName": name}
        if code_sha256:
            params["CodeSha256"] = code_sha256
        response = self._call("publish_version", name, self._client.publish_version, **params)
        return str(response["Version"])

    def wait_until_active(self, name: str) -> None:
        """Block until a newly created function leaves the Pending state."""
        waiter = self._client.get_waiter("function_active")
        self._call("wait_function_active", name, waiter.wait, FunctionName=name)

    def wait_until_updated(self, name: str) -> None:
        """Block until an in-progress update finishes.

        Lambda rejects a configuration update while a code update is still
        in progress.
        """
        waiter = self._client.get_waiter("function_updated")
        self._call("wait_function_updated", name, waiter.wait, FunctionName=name)
