"""
Presigned S3 download links for purchased products.

Maps a product to an object in the products bucket and signs a
time-limited GET URL for it. Signing is local (no network round trip), but
boto3 is synchronous so it still runs in a worker thread.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from ..config import DEFAULT_DOWNLOAD_EXPIRY_SECONDS
from ..errors import RelayUnavailable
from ..types.payments import DownloadGrant

logger = logging.getLogger(__name__)

SERVICE_NAME = "s3"
DEFAULT_FILE_NAME = "download.zip"


def default_file_name(object_key: str) -> str:
    """Last path segment of the key, or a generic name."""
    return object_key.rstrip("/").split("/")[-1] or DEFAULT_FILE_NAME


class DownloadService:
    """Resolves product artifacts and signs download URLs."""

    def __init__(
        self,
        s3_client: Any,
        bucket_name: str,
        product_file_map: Optional[Mapping[str, str]] = None,
        expires_in: int = DEFAULT_DOWNLOAD_EXPIRY_SECONDS,
    ) -> None:
        self._s3 = s3_client
        self.bucket_name = bucket_name
        self.product_file_map: Dict[str, str] = dict(product_file_map or {})
        self.expires_in = expires_in

    def resolve_artifact(
        self,
        product_code: Optional[str],
        product_metadata: Optional[Mapping[str, str]] = None,
    ) -> Optional[Tuple[str, Optional[str]]]:
        """
        Find the S3 object for a product.

        Lookup order: the configured product file map by product code, then
        the product's `s3_path` metadata (with optional `download_filename`).

        Returns:
            (object_key, file_name or None), or None if the product has no artifact
        """
        if product_code and product_code in self.product_file_map:
            return self.product_file_map[product_code], None

        metadata = product_metadata or {}
        s3_path = metadata.get("s3_path")
        if s3_path:
            return s3_path, metadata.get("download_filename") or None

        return None

    async def presign_download(
        self,
        object_key: str,
        expires_in: Optional[int] = None,
        file_name: Optional[str] = None,
    ) -> DownloadGrant:
        """
        Sign a GET URL for one object.

        Raises:
            RelayUnavailable: If boto3 cannot sign the request (e.g. no credentials)
        """
        expiry = expires_in or self.expires_in
        params: Dict[str, str] = {"Bucket": self.bucket_name, "Key": object_key}
        if file_name:
            params["ResponseContentDisposition"] = f'attachment; filename="{file_name}"'

        try:
            url = await asyncio.to_thread(
                self._s3.generate_presigned_url,
                "get_object",
                Params=params,
                ExpiresIn=expiry,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                f"Failed to sign download URL: {type(e).__name__}",
                extra={"bucket": self.bucket_name, "object_key": object_key},
            )
            raise RelayUnavailable(SERVICE_NAME, cause=e)

        return DownloadGrant(
            object_key=object_key,
            file_name=file_name or default_file_name(object_key),
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expiry),
            signed_url=url,
        )
