"""
AWS services used for purchase fulfilment: S3 downloads and SES email.
"""

from typing import Any, Optional

import boto3

from .downloads import DownloadService
from .ses import (
    SESMailer,
    build_intake_notification,
    build_purchase_confirmation,
    build_purchase_without_download_alert,
    format_price,
)


def create_boto3_client(
    service_name: str,
    region: str,
    access_key_id: Optional[str] = None,
    secret_access_key: Optional[str] = None,
) -> Any:
    """Create a boto3 client; without keys the default credential chain is used."""
    kwargs = {"region_name": region}
    if access_key_id and secret_access_key:
        kwargs["aws_access_key_id"] = access_key_id
        kwargs["aws_secret_access_key"] = secret_access_key
    return boto3.client(service_name, **kwargs)


__all__ = [
    "DownloadService",
    "SESMailer",
    "build_intake_notification",
    "build_purchase_confirmation",
    "build_purchase_without_download_alert",
    "create_boto3_client",
    "format_price",
]
