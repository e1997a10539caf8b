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
"""
aws_acme_dns issues ACME certificates with the DNS-01 challenge for domains hosted on AWS Lightsail DNS and AWS
Route53. Each CSR's hostnames are matched to the zone that owns them, the challenge TXT records are written through
that zone's backend and verified in public DNS, and the issued certificate is written to a local file or to S3.
Several certificate requests are processed in parallel.
"""
import logging
from typing import List

from . import errors
from . import tools
from .certificate import IssuedCertificate
from .config import CertificateRequest, Config
from .coordinator import issue_all
from .csr import CertificateSigningRequest
from .order import AcmeOrder, OrderPhase
from .output import write_certificate
from .providers import LightsailProvider, Route53Provider
from .session import AcmeAccount, AcmeSession
from .zones import ZoneRegistry

__pdoc__ = {"tests": False}    # Excludes 'tests' submodule from documentation

logger = logging.getLogger(__name__)


def issue_certificates(config: Config) -> List[IssuedCertificate]:
    """
    Issues a certificate for every certificate request of the configuration and writes each one to its output.

    Args:
        config (aws_acme_dns.config.Config): The loaded configuration.

    Returns:
        list: The issued certificates, in configuration order.

    Raises:
        aws_acme_dns.errors.AcmeDnsError: The first error raised by any certificate request.

    Examples:
        >>> import aws_acme_dns
        >>> aws_acme_dns.issue_certificates(aws_acme_dns.Config.from_file("acme.toml"))
    """
    account = AcmeAccount.load_account_from_file(config.account_file)
    registry = ZoneRegistry.load([LightsailProvider(), Route53Provider()])

    def issue_one(request: CertificateRequest) -> IssuedCertificate:
        order = AcmeOrder(
            account.session(),
            registry,
            request.csr_file,
            cname=config.cname,
            nameservers=list(config.nameservers) if config.nameservers else None,
            propagation_timeout=config.propagation_timeout,
        )
        order.load_and_check_csr()
        certificate = order.request_certificate()
        write_certificate(request.output, certificate)
        return certificate

    return issue_all(config.certificate_requests, issue_one, max_concurrency=config.max_concurrency)
