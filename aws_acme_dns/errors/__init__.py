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
"""Custom exception classes for aws_acme_dns."""


class AcmeDnsError(Exception):
    """Base class for every error raised by aws_acme_dns."""
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# Configuration errors. These are fatal for the certificate request and are never retried.
class ConfigurationError(AcmeDnsError):
    """Error occurs when the local configuration cannot be used to issue a certificate."""


class InvalidCSR(ConfigurationError):
    """Error occurs when a CSR cannot be parsed or does not name valid hostnames."""


class InvalidPath(ConfigurationError):
    """Error occurs when a request file path does not exist."""


class InvalidConfig(ConfigurationError):
    """Error occurs when the configuration file is malformed or missing required values."""


class ConfigExists(ConfigurationError):
    """Error occurs when registration would overwrite an existing account file."""


class InvalidAccount(ConfigurationError):
    """Error occurs when requests are made to the ACME server without registration."""


class InvalidEmail(ConfigurationError):
    """Error occurs when an account action was requested but no valid email value exists."""


class InvalidOutputTarget(ConfigurationError):
    """Error occurs when a certificate output target is neither a local path nor an s3:// URI."""


class NoDnsZone(ConfigurationError):
    """Error occurs when no known DNS zone owns a hostname."""


class DnsChallengeNotSupported(ConfigurationError):
    """Error occurs when the ACME server does not offer the DNS-01 challenge for an authorization."""


# Provider errors. Raised as soon as a DNS backend API call fails.
class ProviderError(AcmeDnsError):
    """Error occurs when a DNS backend (Lightsail or Route53) API call fails."""


# Timeouts. Raised once a polling budget is exhausted.
class ACMETimeout(AcmeDnsError):
    """Error occurs when the max time has been exceeded waiting for an ACME server or DNS event."""


class DnsPropagationTimeout(ACMETimeout):
    """Error occurs when a challenge TXT record is not observed in public DNS before the timeout."""


class OrderValidationTimeout(ACMETimeout):
    """Error occurs when an ACME order stays pending after its challenges were marked ready."""


class CertificateIssueTimeout(ACMETimeout):
    """Error occurs when a finalized ACME order does not produce a certificate in time."""


# Protocol errors.
class AcmeChallengeIncomplete(AcmeDnsError):
    """Error occurs when an ACME order reaches an unexpected status after validation."""


class InvalidCertificate(AcmeDnsError):
    """Error occurs when the certificate bundle returned by the ACME server is malformed."""


class InvalidOrderTransition(AcmeDnsError):
    """Error occurs when an order operation is called in the wrong phase."""
