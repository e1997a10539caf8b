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
"""Issued certificate bundles."""
import dataclasses
from typing import Union

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding

from . import errors


@dataclasses.dataclass(frozen=True)
class IssuedCertificate:
    """The server (leaf) certificate and its issuer certificate, both PEM encoded."""
    leaf_pem: bytes
    issuer_pem: bytes

    @classmethod
    def from_pem_bundle(cls, bundle: Union[str, bytes]) -> 'IssuedCertificate':
        """
        Splits the certificate chain returned by the ACME server. The first block is the leaf certificate and the
        second is its issuer.

        Raises:
            aws_acme_dns.errors.InvalidCertificate: When the bundle does not hold exactly two certificates.
        """
        if isinstance(bundle, str):
            bundle = bundle.encode()

        try:
            certs = x509.load_pem_x509_certificates(bundle)
        except ValueError as err:
            raise errors.InvalidCertificate(f"Unable to parse certificate bundle: {err}") from err

        if len(certs) != 2:
            raise errors.InvalidCertificate(f"Expected a leaf and an issuer certificate, found {len(certs)}.")

        leaf, issuer = certs
        return cls(leaf_pem=leaf.public_bytes(Encoding.PEM), issuer_pem=issuer.public_bytes(Encoding.PEM))

    @property
    def fullchain_pem(self) -> bytes:
        """The leaf certificate followed by its issuer."""
        return self.leaf_pem + self.issuer_pem
