# Copyright 2025 Jared Hendrickson
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Writes issued certificates to a local file or to S3."""
import logging
import pathlib
import urllib.parse
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from . import errors
from .certificate import IssuedCertificate

logger = logging.getLogger(__name__)

PEM_CHAIN_CONTENT_TYPE = "application/pem-certificate-chain"


def write_certificate(target: str, certificate: IssuedCertificate, s3_client: Optional[Any] = None) -> None:
    """
    Writes the leaf certificate to `target`.

    Args:
        target (str): A local file path or an `s3://bucket/key` URI.
        certificate (aws_acme_dns.certificate.IssuedCertificate): The certificate to write.
        s3_client: The boto3 S3 client to use. A default client is created when needed.

    Raises:
        aws_acme_dns.errors.InvalidOutputTarget: When the target is a URI with an unsupported scheme, or the local
            file cannot be written.
        aws_acme_dns.errors.ProviderError: When the S3 upload fails.
    """
    url = urllib.parse.urlparse(target)

    # Local paths have no scheme (or a single drive letter on Windows)
    if len(url.scheme) <= 1:
        try:
            pathlib.Path(target).write_bytes(certificate.leaf_pem)
        except OSError as err:
            raise errors.InvalidOutputTarget(f"Unable to write certificate to '{target}': {err}") from err
        logger.info("Wrote certificate to %s", target)
        return

    if url.scheme != "s3" or not url.netloc or not url.path.lstrip("/"):
        raise errors.InvalidOutputTarget(f"Unsupported certificate output '{target}'.")

    s3_client = s3_client if s3_client else boto3.client("s3")
    try:
        s3_client.put_object(
            Bucket=url.netloc,
            Key=url.path.lstrip("/"),
            Body=certificate.leaf_pem,
            ContentType=PEM_CHAIN_CONTENT_TYPE,
        )
    except (BotoCoreError, ClientError) as err:
        logger.debug('Encountered error during S3 upload: %s', err, exc_info=True)
        raise errors.ProviderError(f"Unable to upload certificate to '{target}': {err}") from err

    logger.info("Uploaded certificate to %s", target)
