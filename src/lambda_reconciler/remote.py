"""Read the deployed configuration of a Lambda function."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import RemoteReadFailedError
from .models import RemoteRecord

logger = logging.getLogger(__name__)

NOT_FOUND_CODE = "ResourceNotFoundException"


class RemoteStateReader:
    """
    Fetches the current configuration of a named function.

    Absence is reported as ``None``. Every other failure raises
    ``RemoteReadFailedError`` and must not be read as "does not exist":
    a throttled or denied read would otherwise trigger a duplicate create.
    """

    def __init__(self, lambda_client: Any) -> None:
        self._client = lambda_client

    def get_remote(self, name: str) -> RemoteRecord | None:
        """
        Get the deployed configuration for ``name``.

        Args:
            name: Lambda function name

        Returns:
            Normalized record, or None if the function does not exist

        Raises:
            RemoteReadFailedError: On any error other than not-found
        """
        try:
            response = self._client.get_function_configuration(FunctionName=name)
        except ClientError as e:
            if e.response["Error"]["Code"] == NOT_FOUND_CODE:
                logger.debug("Function %s does not exist", name)
                return None
            raise RemoteReadFailedError(name, e) from e
        except BotoCoreError as e:
            raise RemoteReadFailedError(name, e) from e

        return RemoteRecord.from_api(response)
