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
"""Test the Lightsail and Route53 DNS backends against mocked boto3 clients."""
import unittest
from unittest import mock

from botocore.exceptions import ClientError

from aws_acme_dns import errors
from aws_acme_dns.providers import (
    ConstantDelay,
    LightsailProvider,
    LightsailZone,
    Route53Provider,
    Route53Zone,
    TrackChangeStatus,
)


def client_error(operation: str) -> ClientError:
    """Builds a boto3 client error."""
    return ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, operation)


class TestLightsailProvider(unittest.TestCase):
    """Tests the Lightsail DNS backend."""

    def setUp(self):
        """Creates a provider on a mocked Lightsail client."""
        self.client = mock.MagicMock()
        self.provider = LightsailProvider(client=self.client)

    def test_list_zones_follows_pages(self):
        """Checks that every page of domains is read and existing TXT entry ids are collected."""
        self.client.get_domains.side_effect = [
            {
                "domains": [{
                    "name": "Example.com",
                    "domainEntries": [
                        {"id": "1", "name": "_acme-challenge.www.example.com", "type": "TXT"},
                        {"id": "2", "name": "www.example.com", "type": "A"},
                    ],
                }],
                "nextPageToken": "page-2",
            },
            {"domains": [{"name": "example.org", "domainEntries": []}]},
        ]

        zones = self.provider.list_zones()
        self.assertEqual(zones, [LightsailZone("example.com"), LightsailZone("example.org")])
        self.assertEqual(dict(zones[0].txt_record_ids), {"_acme-challenge.www.example.com": "1"})
        self.assertEqual(self.client.get_domains.call_args_list, [mock.call(), mock.call(pageToken="page-2")])

    def test_create_entry(self):
        """Checks that a new TXT entry is created with a quoted target and the long initial delay."""
        zone = LightsailZone("example.com")

        wait = self.provider.upsert_txt(zone, "_acme-challenge.www.example.com", "token")
        self.assertEqual(wait, ConstantDelay(50))
        self.client.create_domain_entry.assert_called_once_with(
            domainName="example.com",
            domainEntry={"name": "_acme-challenge.www.example.com", "type": "TXT", "target": '"token"'},
        )
        self.client.update_domain_entry.assert_not_called()

    def test_update_entry(self):
        """Checks that an existing TXT entry is updated in place with the short initial delay."""
        zone = LightsailZone("example.com", txt_record_ids={"_acme-challenge.www.example.com": "1"})

        wait = self.provider.upsert_txt(zone, "_acme-challenge.WWW.example.com", "token")
        self.assertEqual(wait, ConstantDelay(10))
        self.client.update_domain_entry.assert_called_once_with(
            domainName="example.com",
            domainEntry={"name": "_acme-challenge.WWW.example.com", "type": "TXT", "target": '"token"', "id": "1"},
        )
        self.client.create_domain_entry.assert_not_called()

    def test_client_errors(self):
        """Checks that SDK errors are reported as provider errors."""
        self.client.get_domains.side_effect = client_error("GetDomains")
        with self.assertRaises(errors.ProviderError):
            self.provider.list_zones()

        self.client.create_domain_entry.side_effect = client_error("CreateDomainEntry")
        with self.assertRaises(errors.ProviderError):
            self.provider.upsert_txt(LightsailZone("example.com"), "_acme-challenge.example.com", "token")

    def test_change_in_sync(self):
        """Checks that Lightsail changes are always considered in sync."""
        self.assertTrue(self.provider.change_in_sync("anything"))


class TestRoute53Provider(unittest.TestCase):
    """Tests the Route53 backend."""

    def setUp(self):
        """Creates a provider on a mocked Route53 client."""
        self.client = mock.MagicMock()
        self.provider = Route53Provider(client=self.client)

    def test_list_zones(self):
        """Checks that public hosted zones are listed without their trailing dot and private zones are skipped."""
        self.client.get_paginator.return_value.paginate.return_value = [
            {"HostedZones": [
                {"Id": "/hostedzone/Z1", "Name": "example.com.", "Config": {"PrivateZone": False}},
                {"Id": "/hostedzone/Z2", "Name": "internal.example.com.", "Config": {"PrivateZone": True}},
            ]},
            {"HostedZones": [{"Id": "/hostedzone/Z3", "Name": "example.net."}]},
        ]

        zones = self.provider.list_zones()
        self.assertEqual(zones, [Route53Zone("example.com"), Route53Zone("example.net")])
        self.assertEqual(zones[0].hosted_zone_id, "/hostedzone/Z1")
        self.client.get_paginator.assert_called_once_with("list_hosted_zones")

    def test_upsert(self):
        """Checks the UPSERT change batch and that the change is tracked."""
        self.client.change_resource_record_sets.return_value = {"ChangeInfo": {"Id": "/change/C1", "Status": "PENDING"}}

        wait = self.provider.upsert_txt(
            Route53Zone("example.com", hosted_zone_id="/hostedzone/Z1"), "_acme-challenge.www.example.com", "token"
        )
        self.assertIsInstance(wait, TrackChangeStatus)
        self.assertEqual(wait.change_id, "/change/C1")
        self.assertIs(wait.provider, self.provider)

        kwargs = self.client.change_resource_record_sets.call_args.kwargs
        self.assertEqual(kwargs["HostedZoneId"], "/hostedzone/Z1")
        change = kwargs["ChangeBatch"]["Changes"][0]
        self.assertEqual(change["Action"], "UPSERT")
        self.assertEqual(change["ResourceRecordSet"], {
            "Name": "_acme-challenge.www.example.com",
            "Type": "TXT",
            "TTL": 60,
            "ResourceRecords": [{"Value": '"token"'}],
        })

    def test_upsert_without_change_id(self):
        """Checks that a missing change id falls back to a constant delay."""
        self.client.change_resource_record_sets.return_value = {}

        wait = self.provider.upsert_txt(Route53Zone("example.com"), "_acme-challenge.www.example.com", "token")
        self.assertEqual(wait, ConstantDelay(50))

    def test_change_in_sync(self):
        """Checks that only the INSYNC change status is considered in sync."""
        self.client.get_change.side_effect = [
            {"ChangeInfo": {"Id": "/change/C1", "Status": "PENDING"}},
            {"ChangeInfo": {"Id": "/change/C1", "Status": "INSYNC"}},
        ]

        self.assertFalse(self.provider.change_in_sync("/change/C1"))
        self.assertTrue(self.provider.change_in_sync("/change/C1"))
        self.client.get_change.assert_called_with(Id="/change/C1")

    def test_client_errors(self):
        """Checks that SDK errors are reported as provider errors."""
        self.client.get_paginator.return_value.paginate.side_effect = client_error("ListHostedZones")
        with self.assertRaises(errors.ProviderError):
            self.provider.list_zones()

        self.client.get_change.side_effect = client_error("GetChange")
        with self.assertRaises(errors.ProviderError):
            self.provider.change_in_sync("/change/C1")


if __name__ == "__main__":
    unittest.main()
