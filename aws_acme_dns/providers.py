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
DNS hosting backends. Each provider lists the zones it can reach, writes challenge TXT records and reports how long
the caller has to wait before the record can be expected in public DNS.
"""
import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from . import errors

logger = logging.getLogger(__name__)

# Lightsail and Route53 are global services with their endpoints in us-east-1
AWS_DNS_REGION = "us-east-1"
CHALLENGE_TTL = 60
LIGHTSAIL_CREATE_DELAY = 50
LIGHTSAIL_UPDATE_DELAY = 10
ROUTE53_FALLBACK_DELAY = 50


def _normalize(name: str) -> str:
    return name.rstrip(".").lower()


def _quote(txt_value: str) -> str:
    return f'"{txt_value}"'


@dataclasses.dataclass(frozen=True)
class LightsailZone:
    """A Lightsail DNS domain and a snapshot of the ids of its TXT entries at load time."""
    domain_name: str
    txt_record_ids: Mapping[str, str] = dataclasses.field(default_factory=dict, compare=False)

    def contains(self, hostname: str) -> bool:
        """Checks if the hostname is in this zone."""
        return _zone_contains(self.domain_name, hostname)


@dataclasses.dataclass(frozen=True)
class Route53Zone:
    """A Route53 public hosted zone."""
    domain_name: str
    hosted_zone_id: str = dataclasses.field(default="", compare=False)

    def contains(self, hostname: str) -> bool:
        """Checks if the hostname is in this zone."""
        return _zone_contains(self.domain_name, hostname)


DnsZone = Union[LightsailZone, Route53Zone]


def _zone_contains(domain_name: str, hostname: str) -> bool:
    # TODO: a hostname below an NS delegation inside this zone belongs to the delegated zone and should not match
    hostname = _normalize(hostname)
    return hostname == domain_name or hostname.endswith("." + domain_name)


@dataclasses.dataclass(frozen=True)
class ConstantDelay:
    """Wait a fixed number of seconds; used when the backend gives no completion signal."""
    seconds: int


@dataclasses.dataclass(frozen=True)
class TrackChangeStatus:
    """Poll the backend's own change status until the change is in sync on every authoritative server."""
    change_id: str
    provider: 'DnsProvider' = dataclasses.field(compare=False, repr=False)


InitialWaitStrategy = Union[ConstantDelay, TrackChangeStatus]


class DnsProvider:
    """
    Uniform capability of a DNS hosting backend.

    Subclasses set `zone_type` to the zone class they produce and are expected to be safe for concurrent use;
    boto3 clients pool their own connections.
    """
    name = ""
    zone_type: type = object

    def list_zones(self) -> List[DnsZone]:
        """Lists every zone reachable under the configured credentials."""
        raise NotImplementedError()

    def upsert_txt(self, zone: DnsZone, record_name: str, txt_value: str) -> InitialWaitStrategy:
        """Creates or updates the TXT record `record_name` in `zone` and returns how to wait for it."""
        raise NotImplementedError()

    def change_in_sync(self, change_id: str) -> bool:
        """Reports whether a change returned in a `TrackChangeStatus` has fully propagated on the backend."""
        raise NotImplementedError()

    def _call(self, operation: str, method, **kwargs) -> Dict[str, Any]:
        """Runs a boto3 client call, translating SDK failures into ProviderError."""
        try:
            return method(**kwargs)
        except (BotoCoreError, ClientError) as err:
            logger.debug('Encountered error during %s %s: %s', self.name, operation, err, exc_info=True)
            raise errors.ProviderError(f"{self.name} {operation} failed: {err}") from err


class LightsailProvider(DnsProvider):
    """AWS Lightsail DNS backend."""
    name = "lightsail"
    zone_type = LightsailZone

    def __init__(self, client: Optional[Any] = None) -> None:
        self.client = client if client else boto3.client("lightsail", region_name=AWS_DNS_REGION)

    def list_zones(self) -> List[LightsailZone]:
        zones = []
        kwargs = {}

        # GetDomains has no boto3 paginator, follow the page token by hand
        while True:
            response = self._call("GetDomains", self.client.get_domains, **kwargs)
            for domain in response.get("domains", []):
                if not domain.get("name"):
                    continue
                # Collect the name -> id mapping of existing TXT entries
                txt_record_ids = {
                    _normalize(entry["name"]): entry["id"]
                    for entry in domain.get("domainEntries", [])
                    if entry.get("type") == "TXT" and entry.get("name") and entry.get("id")
                }
                zones.append(LightsailZone(domain_name=_normalize(domain["name"]), txt_record_ids=txt_record_ids))

            if not response.get("nextPageToken"):
                return zones
            kwargs = {"pageToken": response["nextPageToken"]}

    def upsert_txt(self, zone: LightsailZone, record_name: str, txt_value: str) -> InitialWaitStrategy:
        entry = {"name": record_name, "type": "TXT", "target": _quote(txt_value)}
        entry_id = zone.txt_record_ids.get(_normalize(record_name))

        # The record already exists, update it in place
        if entry_id:
            entry["id"] = entry_id
            self._call("UpdateDomainEntry", self.client.update_domain_entry,
                       domainName=zone.domain_name, domainEntry=entry)
            logger.info("Updated Lightsail TXT record %s in %s", record_name, zone.domain_name)
            return ConstantDelay(LIGHTSAIL_UPDATE_DELAY)

        self._call("CreateDomainEntry", self.client.create_domain_entry,
                   domainName=zone.domain_name, domainEntry=entry)
        logger.info("Created Lightsail TXT record %s in %s", record_name, zone.domain_name)

        # Lightsail DNS has a long negative cache TTL, give a new name enough time to avoid cached NXDOMAIN answers
        return ConstantDelay(LIGHTSAIL_CREATE_DELAY)

    def change_in_sync(self, change_id: str) -> bool:
        # Lightsail never hands out change ids
        return True


class Route53Provider(DnsProvider):
    """AWS Route53 backend."""
    name = "route53"
    zone_type = Route53Zone

    def __init__(self, client: Optional[Any] = None) -> None:
        self.client = client if client else boto3.client("route53", region_name=AWS_DNS_REGION)

    def list_zones(self) -> List[Route53Zone]:
        zones = []
        paginator = self.client.get_paginator("list_hosted_zones")
        try:
            for page in paginator.paginate():
                for zone in page["HostedZones"]:
                    # Private zones can never be observed by the ACME server's resolvers
                    if zone.get("Config", {}).get("PrivateZone"):
                        continue
                    # ListHostedZones returns zone names with a trailing dot
                    zones.append(Route53Zone(domain_name=_normalize(zone["Name"]), hosted_zone_id=zone["Id"]))
        except (BotoCoreError, ClientError) as err:
            logger.debug('Encountered error during route53 ListHostedZones: %s', err, exc_info=True)
            raise errors.ProviderError(f"route53 ListHostedZones failed: {err}") from err

        return zones

    def upsert_txt(self, zone: Route53Zone, record_name: str, txt_value: str) -> InitialWaitStrategy:
        response = self._call(
            "ChangeResourceRecordSets",
            self.client.change_resource_record_sets,
            HostedZoneId=zone.hosted_zone_id,
            ChangeBatch={
                "Comment": "aws-acme-dns certificate validation UPSERT",
                "Changes": [
                    {
                        "Action": "UPSERT",
                        "ResourceRecordSet": {
                            "Name": record_name,
                            "Type": "TXT",
                            "TTL": CHALLENGE_TTL,
                            "ResourceRecords": [{"Value": _quote(txt_value)}],
                        }
                    }
                ]
            }
        )
        logger.info("Upserted Route53 TXT record %s in %s", record_name, zone.domain_name)

        change_id = response.get("ChangeInfo", {}).get("Id")
        if change_id:
            return TrackChangeStatus(change_id=change_id, provider=self)

        return ConstantDelay(ROUTE53_FALLBACK_DELAY)

    def change_in_sync(self, change_id: str) -> bool:
        response = self._call("GetChange", self.client.get_change, Id=change_id)
        status = response.get("ChangeInfo", {}).get("Status")
        logger.debug("Route53 change %s status %s", change_id, status)
        return status == "INSYNC"
