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
"""Test driving an ACME order from CSR to certificate."""
import pathlib
import tempfile
import unittest
from unittest import mock

from acme import messages

from aws_acme_dns import errors
from aws_acme_dns.order import AcmeOrder, OrderPhase, challenge_record_name
from aws_acme_dns.providers import LightsailZone
from aws_acme_dns.tests import BASE_DOMAIN, TEST_DOMAINS
from aws_acme_dns.tests.tools import (
    FakeClock,
    FakeProvider,
    FakeQuery,
    FakeSession,
    PublishedQuery,
    make_authzr,
    make_cert,
    make_csr,
)
from aws_acme_dns.zones import ZoneRegistry


class TestAcmeOrder(unittest.TestCase):
    """Tests the order lifecycle against an in-memory ACME server and DNS backend."""
    # pylint: disable=too-many-instance-attributes

    @classmethod
    def setUpClass(cls):
        """Creates the certificate bundle shared by every test."""
        cls.leaf = make_cert(TEST_DOMAINS[0])
        cls.issuer = make_cert("Example Issuing CA")
        cls.bundle = (cls.leaf + cls.issuer).decode()

    def setUp(self):
        """Writes a CSR and answers DNS lookups from the records written to the fake provider."""
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.csr_file = str(pathlib.Path(self.tmpdir.name).joinpath("www.csr"))
        pathlib.Path(self.csr_file).write_bytes(make_csr(TEST_DOMAINS[0], TEST_DOMAINS[1:]))

        self.provider = FakeProvider([LightsailZone(BASE_DOMAIN)])
        self.registry = ZoneRegistry(self.provider.zones, [self.provider])
        self.clock = FakeClock()

        patcher = mock.patch(
            "aws_acme_dns.tools.TXTQuery",
            side_effect=lambda domain, nameservers=None, round_robin=False: PublishedQuery(self.provider, domain),
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def new_order(self, session: FakeSession, **kwargs) -> AcmeOrder:
        """Creates an order with the CSR already loaded."""
        order = AcmeOrder(
            session, self.registry, self.csr_file, sleep=self.clock.sleep, clock=self.clock.clock, **kwargs
        )
        order.load_and_check_csr()
        return order

    def test_issue_certificate(self):
        """Checks that every challenge is published and marked ready before the order is finalized."""
        session = FakeSession([make_authzr(name) for name in TEST_DOMAINS], bundle=self.bundle, bundle_after=1)
        order = self.new_order(session)

        certificate = order.request_certificate()
        self.assertEqual(order.phase, OrderPhase.ISSUED)
        self.assertEqual(certificate.leaf_pem, self.leaf)
        self.assertEqual(certificate.issuer_pem, self.issuer)
        self.assertEqual(session.certificate_calls, 2)

        # Both challenge records hold their key authorization value
        self.assertEqual(self.provider.records, {
            "_acme-challenge.www.example.com": "txt-www.example.com",
            "_acme-challenge.alt1.example.com": "txt-alt1.example.com",
        })

        names = [call[0] for call in session.calls]
        self.assertEqual(names, ["submit_order", "authorizations", "mark_ready", "mark_ready", "order_status", "finalize"])
        self.assertEqual(
            [call[2] for call in session.called("mark_ready")], ["response-www.example.com", "response-alt1.example.com"]
        )

    def test_submits_csr(self):
        """Checks that the CSR is submitted as loaded."""
        session = FakeSession([make_authzr(TEST_DOMAINS[0])], bundle=self.bundle)
        order = self.new_order(session)
        order.request_certificate()

        self.assertEqual(session.called("submit_order")[0][1], order.csr.pem)

    def test_dns_challenge_not_offered(self):
        """Checks that a missing DNS-01 challenge fails before any record is written or the order finalized."""
        session = FakeSession(
            [make_authzr(TEST_DOMAINS[0]), make_authzr(TEST_DOMAINS[1], dns01=False)], bundle=self.bundle
        )
        order = self.new_order(session)

        with self.assertRaises(errors.DnsChallengeNotSupported):
            order.request_certificate()
        self.assertEqual(order.phase, OrderPhase.FAILED)
        self.assertEqual(self.provider.upserts, [])
        self.assertEqual(session.called("mark_ready"), [])
        self.assertEqual(session.called("finalize"), [])

    def test_skips_authorizations_that_are_not_pending(self):
        """Checks that already valid authorizations are not published again."""
        session = FakeSession(
            [make_authzr(TEST_DOMAINS[0], status=messages.STATUS_VALID), make_authzr(TEST_DOMAINS[1])],
            bundle=self.bundle,
        )
        self.new_order(session).request_certificate()

        self.assertEqual(self.provider.upserts, [(BASE_DOMAIN, "_acme-challenge.alt1.example.com", "txt-alt1.example.com")])
        self.assertEqual(len(session.called("mark_ready")), 1)

    def test_order_pending_then_ready(self):
        """Checks that a pending order is polled again before finalizing."""
        session = FakeSession(
            [make_authzr(TEST_DOMAINS[0])],
            statuses=[messages.STATUS_PENDING, messages.STATUS_READY],
            bundle=self.bundle,
        )
        self.new_order(session).request_certificate()
        self.assertEqual(len(session.called("order_status")), 2)

    def test_order_processing(self):
        """Checks that a processing order is given time and then finalized."""
        session = FakeSession([make_authzr(TEST_DOMAINS[0])], statuses=[messages.STATUS_PROCESSING], bundle=self.bundle)
        order = self.new_order(session)
        order.request_certificate()
        self.assertEqual(order.phase, OrderPhase.ISSUED)

    def test_order_invalid(self):
        """Checks that an invalid order is reported and never finalized."""
        session = FakeSession([make_authzr(TEST_DOMAINS[0])], statuses=[messages.STATUS_INVALID], bundle=self.bundle)
        order = self.new_order(session)

        with self.assertRaises(errors.AcmeChallengeIncomplete):
            order.request_certificate()
        self.assertEqual(order.phase, OrderPhase.FAILED)
        self.assertEqual(session.called("finalize"), [])

    def test_order_stays_pending(self):
        """Checks that an order that never leaves pending times out after three polls."""
        session = FakeSession([make_authzr(TEST_DOMAINS[0])], statuses=[messages.STATUS_PENDING], bundle=self.bundle)

        with self.assertRaises(errors.OrderValidationTimeout):
            self.new_order(session).request_certificate()
        self.assertEqual(len(session.called("order_status")), 3)
        self.assertEqual(session.called("finalize"), [])

    def test_certificate_never_issued(self):
        """Checks that certificate polling gives up after twelve attempts."""
        session = FakeSession([make_authzr(TEST_DOMAINS[0])])
        order = self.new_order(session)

        with self.assertRaises(errors.CertificateIssueTimeout):
            order.request_certificate()
        self.assertEqual(session.certificate_calls, 12)
        self.assertEqual(order.phase, OrderPhase.FAILED)

    def test_propagation_timeout(self):
        """Checks that a challenge that never propagates times out on the order clock and is not marked ready."""
        session = FakeSession([make_authzr(TEST_DOMAINS[0])], bundle=self.bundle)
        order = self.new_order(session, propagation_timeout=30)
        query = FakeQuery(100, "never-published")

        with mock.patch("aws_acme_dns.tools.TXTQuery", return_value=query):
            with self.assertRaises(errors.DnsPropagationTimeout):
                order.request_certificate()
        self.assertEqual(query.calls, 3)
        self.assertEqual(self.clock.now, 30)
        self.assertEqual(session.called("mark_ready"), [])

    def test_validation_gets_full_poll_budget(self):
        """Checks that the order status is only read after waiting, and every poll is five seconds apart."""
        session = FakeSession(
            [make_authzr(TEST_DOMAINS[0])], statuses=[messages.STATUS_PENDING], bundle=self.bundle, clock=self.clock
        )

        with self.assertRaises(errors.OrderValidationTimeout):
            self.new_order(session).request_certificate()

        ready_at = session.times[0][1]
        self.assertEqual(session.times[0][0], "mark_ready")
        self.assertEqual([when - ready_at for _, when in session.times[1:]], [5, 10, 15])

    def test_no_dns_zone(self):
        """Checks that a subject without an owning zone fails before the order is submitted."""
        session = FakeSession([make_authzr(TEST_DOMAINS[0])], bundle=self.bundle)
        self.registry = ZoneRegistry([LightsailZone("example.net")], [self.provider])
        order = AcmeOrder(session, self.registry, self.csr_file, sleep=self.clock.sleep)

        with self.assertRaises(errors.NoDnsZone):
            order.load_and_check_csr()
        self.assertEqual(order.phase, OrderPhase.FAILED)
        self.assertEqual(session.calls, [])

    def test_invalid_csr_file(self):
        """Checks that a missing CSR file fails the order."""
        order = AcmeOrder(FakeSession([]), self.registry, "/nonexistent/www.csr")

        with self.assertRaises(errors.InvalidPath):
            order.load_and_check_csr()
        self.assertEqual(order.phase, OrderPhase.FAILED)

    def test_invalid_transitions(self):
        """Checks that operations called out of order are rejected."""
        session = FakeSession([make_authzr(TEST_DOMAINS[0])], bundle=self.bundle)
        order = AcmeOrder(session, self.registry, self.csr_file, sleep=self.clock.sleep)

        with self.assertRaises(errors.InvalidOrderTransition):
            order.request_certificate()
        self.assertEqual(order.phase, OrderPhase.INIT)

        order.load_and_check_csr()
        with self.assertRaises(errors.InvalidOrderTransition):
            order.load_and_check_csr()

        order.request_certificate()
        with self.assertRaises(errors.InvalidOrderTransition):
            order.request_certificate()
        self.assertEqual(len(session.called("submit_order")), 1)

    def test_cname_remap(self):
        """Checks that challenge records delegated with a CNAME are published under the canonical name."""
        pathlib.Path(self.csr_file).write_bytes(make_csr(TEST_DOMAINS[0]))
        self.provider.zones = [LightsailZone("validation.example.org")]
        self.registry = ZoneRegistry(self.provider.zones, [self.provider])
        session = FakeSession([make_authzr(TEST_DOMAINS[0])], bundle=self.bundle)

        order = self.new_order(session, cname={"_acme-challenge.WWW.example.com": "www.validation.example.org"})
        order.request_certificate()
        self.assertEqual(self.provider.upserts, [("validation.example.org", "www.validation.example.org", "txt-www.example.com")])

    def test_challenge_record_name(self):
        """Checks the challenge record name of plain and wildcard hostnames."""
        self.assertEqual(challenge_record_name("www.example.com"), "_acme-challenge.www.example.com")
        self.assertEqual(challenge_record_name("*.example.com"), "_acme-challenge.example.com")


if __name__ == "__main__":
    unittest.main()
