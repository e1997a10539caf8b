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
"""Certificate signing request (PKCS#10) inspection."""
import dataclasses
import pathlib
from typing import Iterator, Tuple

import validators
from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID

from . import errors


def strip_wildcard(domain: str) -> str:
    """
    Strips the wildcard portion of a domain (*.) if present.

    Args:
        domain (str): The domain string to strip wildcards from.

    Returns:
        str: The domain string without the wildcard portion.
    """
    return domain[2:] if domain.startswith("*.") else domain


def _check_hostname(hostname: str) -> str:
    """Lower-cases a hostname and ensures it is an RFC2181 compliant FQDN (wildcards allowed)."""
    hostname = hostname.lower()
    if not validators.domain(strip_wildcard(hostname)):
        raise errors.InvalidCSR(f"Invalid domain name '{hostname}'. Domain name must adhere to RFC2181.")
    return hostname


@dataclasses.dataclass(frozen=True)
class CertificateSigningRequest:
    """
    A parsed certificate signing request.

    Attributes:
        raw_der (bytes): The DER encoded request, submitted as-is when finalizing an ACME order.
        primary_subject (str): The lower-cased subject common name.
        alt_names (tuple): The lower-cased DNS names of the subject alternative name extension.
    """
    raw_der: bytes
    primary_subject: str
    alt_names: Tuple[str, ...] = ()

    @classmethod
    def from_pem(cls, data: bytes) -> 'CertificateSigningRequest':
        """
        Parses a PEM encoded CSR.

        Args:
            data (bytes): The PEM encoded CSR data bytes-string.

        Returns:
            aws_acme_dns.csr.CertificateSigningRequest: The parsed request.

        Raises:
            aws_acme_dns.errors.InvalidCSR: When the data is not a CSR, has no common name or names an
                invalid hostname.

        Examples:
            >>> csr = CertificateSigningRequest.from_pem(open("www.csr", "rb").read())
            >>> list(csr.subjects)
            ['www.example.com', 'alt1.example.com']
        """
        # The subject and extensions are only decoded when first read, so they are read here too
        try:
            request = x509.load_pem_x509_csr(data)
            common_names = request.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
            extensions = request.extensions
        except (ValueError, x509.DuplicateExtension) as err:
            raise errors.InvalidCSR(f"Unable to parse certificate signing request: {err}") from err

        if not common_names:
            raise errors.InvalidCSR("Certificate signing request has no subject common name.")
        if not isinstance(common_names[0].value, str):
            raise errors.InvalidCSR("Certificate signing request common name is not a string.")

        # Only DNS names are used from the SAN extension, other name types are ignored
        try:
            san = extensions.get_extension_for_class(x509.SubjectAlternativeName)
            dns_names = san.value.get_values_for_type(x509.DNSName)
        except x509.ExtensionNotFound:
            dns_names = []

        return cls(
            raw_der=request.public_bytes(Encoding.DER),
            primary_subject=_check_hostname(common_names[0].value),
            alt_names=tuple(_check_hostname(name) for name in dns_names),
        )

    @classmethod
    def from_pem_file(cls, path: str) -> 'CertificateSigningRequest':
        """
        Reads and parses a PEM encoded CSR file.

        Raises:
            aws_acme_dns.errors.InvalidPath: When the CSR file does not exist.
        """
        filepath = pathlib.Path(path)
        if not filepath.is_file():
            raise errors.InvalidPath(f"No CSR file found at '{filepath}'")

        return cls.from_pem(filepath.read_bytes())

    @property
    def subjects(self) -> Iterator[str]:
        """Yields the primary subject followed by every alternative name, skipping duplicates."""
        seen = set()
        for name in (self.primary_subject, *self.alt_names):
            if name not in seen:
                seen.add(name)
                yield name

    @property
    def pem(self) -> bytes:
        """The PEM encoded request."""
        return x509.load_der_x509_csr(self.raw_der).public_bytes(Encoding.PEM)
