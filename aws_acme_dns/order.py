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
"""Drives one ACME order from CSR to issued certificate using DNS-01 challenges."""
import enum
import logging
import time
from typing import Callable, Dict, Optional

from acme import challenges
from acme import messages

from . import errors
from .certificate import IssuedCertificate
from .csr import CertificateSigningRequest, strip_wildcard
from .propagation import DEFAULT_PROPAGATION_TIMEOUT
from .zones import ZoneRegistry

logger = logging.getLogger(__name__)

DNS_LABEL = '_acme-challenge'
ORDER_POLL_ATTEMPTS = 3
CERTIFICATE_POLL_ATTEMPTS = 12
POLL_INTERVAL = 5


class OrderPhase(enum.Enum):
    """Local progress of an order. The remote order status is owned by the ACME server."""
    INIT = "init"
    CSR_LOADED = "csr_loaded"
    ORDER_SUBMITTED = "order_submitted"
    CHALLENGES_PUBLISHED = "challenges_published"
    VALIDATING = "validating"
    FINALIZING = "finalizing"
    POLLING = "polling"
    ISSUED = "issued"
    FAILED = "failed"


TRANSITIONS = {
    OrderPhase.INIT: {OrderPhase.CSR_LOADED},
    OrderPhase.CSR_LOADED: {OrderPhase.ORDER_SUBMITTED},
    OrderPhase.ORDER_SUBMITTED: {OrderPhase.CHALLENGES_PUBLISHED},
    OrderPhase.CHALLENGES_PUBLISHED: {OrderPhase.VALIDATING},
    OrderPhase.VALIDATING: {OrderPhase.FINALIZING},
    OrderPhase.FINALIZING: {OrderPhase.POLLING},
    OrderPhase.POLLING: {OrderPhase.ISSUED},
    OrderPhase.ISSUED: set(),
    OrderPhase.FAILED: set(),
}


def challenge_record_name(hostname: str) -> str:
    """Returns the DNS-01 TXT record name for a hostname, e.g. `_acme-challenge.www.example.com`."""
    return f"{DNS_LABEL}.{strip_wildcard(hostname)}"


class AcmeOrder:
    """
    One certificate request. Call `load_and_check_csr()` then `request_certificate()`; calling them out of order
    raises `InvalidOrderTransition`, and any failure leaves the order in the FAILED phase.
    """
    # pylint: disable=too-many-instance-attributes,too-many-arguments

    def __init__(
            self,
            session,
            registry: ZoneRegistry,
            csr_file: str,
            cname: Optional[Dict[str, str]] = None,
            nameservers: list = None,
            propagation_timeout: int = DEFAULT_PROPAGATION_TIMEOUT,
            sleep: Callable[[float], None] = time.sleep,
            clock: Callable[[], float] = time.monotonic
    ) -> None:
        """
        Args:
            session (aws_acme_dns.session.AcmeSession): The ACME session to place the order with.
            registry (aws_acme_dns.zones.ZoneRegistry): The loaded DNS zones.
            csr_file (str): Path of the PEM encoded CSR.
            cname (dict): Hostname to canonical hostname remap, for challenge records delegated with a CNAME.
            nameservers (list): Nameservers to query when checking DNS propagation.
            propagation_timeout (int): Seconds to wait for each challenge record to propagate.
            sleep (callable): Sleep function, replaceable in tests.
            clock (callable): Monotonic clock function used for propagation timeouts, replaceable in tests.
        """
        self.session = session
        self.registry = registry
        self.csr_file = csr_file
        self.cname = {key.lower(): value for key, value in (cname or {}).items()}
        self.nameservers = nameservers
        self.propagation_timeout = propagation_timeout
        self.sleep = sleep
        self.clock = clock
        self.phase = OrderPhase.INIT
        self.csr = None
        self.order = None
        self.certificate = None

    def canonical_host(self, hostname: str) -> str:
        """Applies the CNAME remap to a hostname; unmapped names are returned unchanged."""
        return self.cname.get(hostname.lower(), hostname)

    def _transition(self, phase: OrderPhase) -> None:
        if phase is not OrderPhase.FAILED and phase not in TRANSITIONS[self.phase]:
            raise errors.InvalidOrderTransition(f"Cannot move order from {self.phase.value} to {phase.value}.")
        logger.debug("Order for %s: %s -> %s", self.csr_file, self.phase.value, phase.value)
        self.phase = phase

    def _require(self, phase: OrderPhase) -> None:
        if self.phase is not phase:
            raise errors.InvalidOrderTransition(f"Order is {self.phase.value}, expected {phase.value}.")

    def load_and_check_csr(self) -> CertificateSigningRequest:
        """
        Reads the CSR and checks a zone owns the challenge record of every subject, before anything is sent to the
        ACME server.

        Raises:
            aws_acme_dns.errors.InvalidCSR: When the CSR cannot be parsed.
            aws_acme_dns.errors.NoDnsZone: When a challenge record has no owning zone.
        """
        self._require(OrderPhase.INIT)
        try:
            csr = CertificateSigningRequest.from_pem_file(self.csr_file)
            for hostname in csr.subjects:
                record_name = self.canonical_host(challenge_record_name(hostname))
                if self.registry.find_zone(record_name) is None:
                    raise errors.NoDnsZone(f"No DNS zone for {record_name}")
        except Exception:
            self._transition(OrderPhase.FAILED)
            raise

        self.csr = csr
        self._transition(OrderPhase.CSR_LOADED)
        return csr

    def request_certificate(self) -> IssuedCertificate:
        """
        Places the order, publishes and verifies every pending DNS-01 challenge, finalizes the order and waits for
        the certificate.

        Returns:
            aws_acme_dns.certificate.IssuedCertificate: The issued leaf and issuer certificates.

        Raises:
            aws_acme_dns.errors.InvalidOrderTransition: When the CSR was not loaded first.
            aws_acme_dns.errors.DnsChallengeNotSupported: When an authorization offers no DNS-01 challenge.
            aws_acme_dns.errors.DnsPropagationTimeout: When a challenge record does not propagate in time.
            aws_acme_dns.errors.AcmeChallengeIncomplete: When the order ends up in an unexpected status.
            aws_acme_dns.errors.OrderValidationTimeout: When the order stays pending.
            aws_acme_dns.errors.CertificateIssueTimeout: When the certificate never becomes available.
        """
        self._require(OrderPhase.CSR_LOADED)
        try:
            self._submit_order()
            self._publish_challenges()
            self._wait_for_order_ready()
            self._transition(OrderPhase.FINALIZING)
            self.order = self.session.finalize(self.order, self.csr.pem)
            logger.info("Finalized ACME order for %s", self.csr.primary_subject)
            self._transition(OrderPhase.POLLING)
            self.certificate = self._poll_certificate()
        except Exception:
            self._transition(OrderPhase.FAILED)
            raise

        self._transition(OrderPhase.ISSUED)
        return self.certificate

    def _submit_order(self) -> None:
        self.order = self.session.submit_order(self.csr.pem)
        self._transition(OrderPhase.ORDER_SUBMITTED)

    def _publish_challenges(self) -> None:
        # Collect every challenge first so an unsupported authorization fails before any record is written
        pending = []
        for authzr in self.session.authorizations(self.order):
            # Valid, invalid, revoked and expired authorizations are not validated again
            if authzr.body.status != messages.STATUS_PENDING:
                continue

            challb = next(
                (challb for challb in authzr.body.challenges if isinstance(challb.chall, challenges.DNS01)), None
            )
            if challb is None:
                raise errors.DnsChallengeNotSupported(
                    f"ACME server does not offer the DNS-01 challenge for '{authzr.body.identifier.value}'."
                )
            pending.append((authzr.body.identifier.value, challb))

        # One hostname at a time: write, confirm propagation, then let the ACME server validate it
        for hostname, challb in pending:
            response, txt_value = self.session.key_authorization(challb)
            record_name = self.canonical_host(challenge_record_name(hostname))

            record = self.registry.update_txt_record(record_name, txt_value)
            record.wait_for_propagation(
                timeout=self.propagation_timeout, nameservers=self.nameservers, sleep=self.sleep, clock=self.clock
            )
            self.session.mark_ready(challb, response)
            logger.info("Challenge for %s is ready for validation", hostname)

        self._transition(OrderPhase.CHALLENGES_PUBLISHED)

    def _wait_for_order_ready(self) -> None:
        self._transition(OrderPhase.VALIDATING)
        # Give the ACME server time to validate before every status check
        for _ in range(ORDER_POLL_ATTEMPTS):
            self.sleep(POLL_INTERVAL)

            status = self.session.order_status(self.order)
            logger.debug("Order for %s is %s", self.csr.primary_subject, status)
            if status in (messages.STATUS_READY, messages.STATUS_VALID):
                return
            if status == messages.STATUS_PROCESSING:
                self.sleep(POLL_INTERVAL)
                return
            if status != messages.STATUS_PENDING:
                raise errors.AcmeChallengeIncomplete(
                    f"ACME order for {self.csr.primary_subject} is {status} after validation."
                )

        raise errors.OrderValidationTimeout(f"ACME order for {self.csr.primary_subject} is still pending.")

    def _poll_certificate(self) -> IssuedCertificate:
        for _ in range(CERTIFICATE_POLL_ATTEMPTS):
            self.sleep(POLL_INTERVAL)
            bundle = self.session.certificate(self.order)
            if bundle:
                logger.info("Certificate for %s has been issued", self.csr.primary_subject)
                return IssuedCertificate.from_pem_bundle(bundle)

        raise errors.CertificateIssueTimeout(
            f"No certificate for {self.csr.primary_subject} after {CERTIFICATE_POLL_ATTEMPTS * POLL_INTERVAL} seconds."
        )
