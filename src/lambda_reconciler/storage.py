"""S3 upload and dependency-layer adapters used by the reconciler."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from .archiver import pack
from .exceptions import ProviderCallFailedError
from .models import LayerRef

logger = logging.getLogger(__name__)

LAYER_SUFFIX = "-dependencies"


class ObjectStorage(Protocol):
    """Uploads a local file and returns the object key it was stored under."""

    def upload(self, bucket: str, local_path: Path) -> str: ...


class LayerPackager(Protocol):
    """Packages a dependency directory into an attachable layer."""

    def package(
        self,
        directory: Path,
        *,
        function_name: str,
        runtime: str,
        prefix: str | None,
        bucket: str,
        previous: LayerRef | None = None,
    ) -> LayerRef: ...

    def remove(self, layer: LayerRef) -> None: ...


class S3Storage:
    """ObjectStorage backed by S3. Objects are keyed by the file's base name."""

    def __init__(self, s3_client: Any) -> None:
        self._client = s3_client

    def upload(self, bucket: str, local_path: Path) -> str:
        key = Path(local_path).name
        logger.debug("Uploading %s to s3://%s/%s", local_path, bucket, key)
        try:
            self._client.upload_file(str(local_path), bucket, key)
        except (ClientError, BotoCoreError, Boto3Error) as e:
            raise ProviderCallFailedError("upload_file", f"s3://{bucket}/{key}", e) from e
        return key


class S3LayerPackager:
    """
    Publishes a dependency directory as a Lambda layer through S3.

    The directory is archived with the runtime's layer prefix. When the
    archive hash matches the previously published layer, that layer is
    returned unchanged and nothing is uploaded or published.
    """

    def __init__(self, lambda_client: Any, storage: ObjectStorage) -> None:
        self._client = lambda_client
        self._storage = storage

    def package(
        self,
        directory: Path,
        *,
        function_name: str,
        runtime: str,
        prefix: str | None,
        bucket: str,
        previous: LayerRef | None = None,
    ) -> LayerRef:
        artifact = pack(directory, prefix=prefix)
        try:
            if previous is not None and previous.content_hash == artifact.content_hash:
                logger.debug("Dependency layer %s unchanged", previous.arn)
                return previous

            layer_name = f"{function_name}{LAYER_SUFFIX}"
            key = self._storage.upload(bucket, artifact.path)
            try:
                response = self._client.publish_layer_version(
                    LayerName=layer_name,
                    Description=f"{function_name} Dependencies Layer",
                    Content={"S3Bucket": bucket, "S3Key": key},
                    CompatibleRuntimes=[runtime],
                )
            except (ClientError, BotoCoreError) as e:
                raise ProviderCallFailedError("publish_layer_version", layer_name, e) from e
        finally:
            artifact.path.unlink(missing_ok=True)

        logger.info("Published dependency layer %s", response["LayerVersionArn"])
        return LayerRef(
            name=layer_name,
            version=int(response["Version"]),
            arn=response["LayerVersionArn"],
            content_hash=artifact.content_hash,
        )

    def remove(self, layer: LayerRef) -> None:
        try:
            self._client.delete_layer_version(LayerName=layer.name, VersionNumber=layer.version)
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceNotFoundException":
                raise ProviderCallFailedError("delete_layer_version", layer.arn, e) from e
        except BotoCoreError as e:
            raise ProviderCallFailedError("delete_layer_version", layer.arn, e) from e
