"""
S3 object store implementation.

This module provides an S3 (or S3-compatible: MinIO, R2) backend for the
remote checkpoint archive. It uses aiobotocore for async operations.

Key layout:
    s3://<bucket>/<prefix>/epoch_<N>/<checkpoint files>
    s3://<bucket>/<prefix>/epoch_<N>/_SUCCESS

Invariants:
    - Only NoSuchKey / 404 maps to ObjectNotFoundError
    - Throttling, auth and network errors surface as StoreError, including
      transport errors raised while streaming a response body
    - All keys live under the configured prefix

How to change safely:
    - Test against MinIO before deploying to AWS
    - Keep the "/" delimiter listing, the epoch index depends on it
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from .base import ObjectNotFoundError, StoreConnectionError, StoreError, join_path

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})

# Raised by the HTTP layer below botocore, e.g. a dropped connection mid-body
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class S3ObjectStore:
    """ObjectStore implementation over an S3 bucket.

    Attributes:
        config: ObjectStoreConfig with bucket, prefix and credentials

    Example:
        >>> store = S3ObjectStore(ObjectStoreConfig(object_store=ObjectStoreType.S3,
        ...                                         bucket="node-archive"))
        >>> await store.connect()
        >>> await store.list_prefixes()
        ['epoch_0', 'epoch_1']
    """

    def __init__(self, config: Any) -> None:
        """Initialize the S3 store.

        Args:
            config: ObjectStoreConfig instance
        """
        self.config = config
        self.bucket = config.bucket
        self.prefix = join_path(config.prefix or "")
        self._session = None
        self._s3_ctx = None
        self._s3_client = None

    def __repr__(self) -> str:
        return f"S3ObjectStore(s3://{self.bucket}/{self.prefix})"

    async def connect(self) -> None:
        """Initialize S3 client."""
        if self._s3_client:
            return

        self._session = get_session()

        client_kwargs = {
            "region_name": self.config.region,
        }

        if self.config.endpoint_url:
            client_kwargs["endpoint_url"] = self.config.endpoint_url

        if self.config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.config.secret_access_key

        try:
            self._s3_ctx = self._session.create_client("s3", **client_kwargs)
            self._s3_client = await self._s3_ctx.__aenter__()
        except (BotoCoreError, ClientError) as e:
            raise StoreConnectionError(f"Failed to create S3 client: {e}") from e

        logger.info(
            "Connected to S3",
            extra={
                "bucket": self.bucket,
                "prefix": self.prefix,
                "endpoint": self.config.endpoint_url or "AWS",
            },
        )

    async def close(self) -> None:
        """Close S3 client."""
        if self._s3_client:
            await self._s3_ctx.__aexit__(None, None, None)
            self._s3_client = None
            self._s3_ctx = None

    def _key(self, path: str | None) -> str:
        return join_path(self.prefix, path or "")

    def _path(self, key: str) -> str:
        if self.prefix and key.startswith(self.prefix + "/"):
            key = key[len(self.prefix) + 1 :]
        return join_path(key)

    def _client(self):
        if not self._s3_client:
            raise StoreConnectionError("S3 store is not connected")
        return self._s3_client

    async def list_prefixes(self, prefix: str | None = None) -> list[str]:
        """List common prefixes one level below ``prefix``."""
        list_prefix = self._key(prefix)
        if list_prefix:
            list_prefix += "/"

        prefixes = []
        try:
            paginator = self._client().get_paginator("list_objects_v2")
            async for page in paginator.paginate(
                Bucket=self.bucket, Prefix=list_prefix, Delimiter="/"
            ):
                for common in page.get("CommonPrefixes", []):
                    prefixes.append(self._path(common["Prefix"]))
        except EndpointConnectionError as e:
            raise StoreConnectionError(f"Failed to reach S3 endpoint: {e}") from e
        except (BotoCoreError, ClientError, *TRANSPORT_ERRORS) as e:
            raise StoreError(f"Failed to list s3://{self.bucket}/{list_prefix}: {e}") from e

        return sorted(prefixes)

    async def list(self, prefix: str | None = None) -> list[str]:
        """List every object key under ``prefix``."""
        list_prefix = self._key(prefix)
        if list_prefix:
            list_prefix += "/"

        paths = []
        try:
            paginator = self._client().get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=self.bucket, Prefix=list_prefix):
                for obj in page.get("Contents", []):
                    paths.append(self._path(obj["Key"]))
        except (BotoCoreError, ClientError, *TRANSPORT_ERRORS) as e:
            raise StoreError(f"Failed to list s3://{self.bucket}/{list_prefix}: {e}") from e

        return sorted(paths)

    async def get(self, path: str) -> bytes:
        """Download an object."""
        key = self._key(path)
        try:
            response = await self._client().get_object(Bucket=self.bucket, Key=key)
            return await response["Body"].read()
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in NOT_FOUND_CODES:
                raise ObjectNotFoundError(path) from e
            raise StoreError(f"Failed to get s3://{self.bucket}/{key}: {e}") from e
        except (BotoCoreError, *TRANSPORT_ERRORS) as e:
            raise StoreError(f"Failed to get s3://{self.bucket}/{key}: {e}") from e

    async def put(self, path: str, data: bytes) -> None:
        """Upload an object."""
        key = self._key(path)
        try:
            await self._client().put_object(Bucket=self.bucket, Key=key, Body=data)
        except (BotoCoreError, ClientError, *TRANSPORT_ERRORS) as e:
            raise StoreError(f"Failed to put s3://{self.bucket}/{key}: {e}") from e

    async def delete(self, path: str) -> None:
        """Delete an object."""
        key = self._key(path)
        try:
            await self._client().delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError, *TRANSPORT_ERRORS) as e:
            raise StoreError(f"Failed to delete s3://{self.bucket}/{key}: {e}") from e
