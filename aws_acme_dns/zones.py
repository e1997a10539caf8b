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
"""Zone ownership lookup and challenge record publication across every configured DNS backend."""
import concurrent.futures
import logging
from typing import Optional, Sequence, Tuple

from . import errors
from .propagation import ChallengeRecord
from .providers import DnsProvider, DnsZone

logger = logging.getLogger(__name__)


class ZoneRegistry:
    """
    Every DNS zone reachable under the caller's credentials, with the providers able to mutate them. The registry
    is loaded once and never changes afterwards, so it can be shared by concurrent certificate requests.
    """

    def __init__(self, zones: Sequence[DnsZone], providers: Sequence[DnsProvider]) -> None:
        self.zones: Tuple[DnsZone, ...] = tuple(zones)
        self.providers: Tuple[DnsProvider, ...] = tuple(providers)

    @classmethod
    def load(cls, providers: Sequence[DnsProvider]) -> 'ZoneRegistry':
        """
        Lists the zones of every provider concurrently and concatenates them in provider order.

        Args:
            providers (list): The DNS providers to load zones from.

        Returns:
            aws_acme_dns.zones.ZoneRegistry: The loaded registry.

        Raises:
            aws_acme_dns.errors.ProviderError: When any provider fails to list its zones. A partial zone set is never
                returned, since lookups against it could pick the wrong zone.
        """
        zones = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=max(len(providers), 1)) as executor:
            futures = [executor.submit(provider.list_zones) for provider in providers]
            for provider, future in zip(providers, futures):
                provider_zones = future.result()
                logger.info("Loaded %d %s zone(s)", len(provider_zones), provider.name)
                zones.extend(provider_zones)

        return cls(zones, providers)

    def find_zone(self, hostname: str) -> Optional[DnsZone]:
        """
        Finds the zone that owns a hostname: the zone with the longest domain name the hostname falls under.

        Args:
            hostname (str): The hostname to look up.

        Returns:
            The most specific owning zone, or None when no zone owns the hostname.

        Examples:
            >>> registry.find_zone("app.staging.example.com").domain_name
            'staging.example.com'
        """
        best = None
        for zone in self.zones:
            if zone.contains(hostname) and (best is None or len(zone.domain_name) > len(best.domain_name)):
                best = zone
        return best

    def provider_for(self, zone: DnsZone) -> DnsProvider:
        """Returns the provider that manages the given zone's variant."""
        for provider in self.providers:
            if isinstance(zone, provider.zone_type):
                return provider
        raise errors.NoDnsZone(f"No DNS provider configured for zone '{zone.domain_name}'")

    def update_txt_record(self, record_name: str, txt_value: str) -> ChallengeRecord:
        """
        Publishes a challenge TXT record in the zone that owns it.

        Args:
            record_name (str): The TXT record name, e.g. `_acme-challenge.www.example.com`.
            txt_value (str): The expected TXT value.

        Returns:
            aws_acme_dns.propagation.ChallengeRecord: The record and the provider specific initial wait.

        Raises:
            aws_acme_dns.errors.NoDnsZone: When no zone owns the record name.
            aws_acme_dns.errors.ProviderError: When the backend write fails.
        """
        zone = self.find_zone(record_name)
        if zone is None:
            raise errors.NoDnsZone(f"No DNS zone for {record_name}")

        initial_wait = self.provider_for(zone).upsert_txt(zone, record_name, txt_value)
        return ChallengeRecord(record_name=record_name, txt_value=txt_value, initial_wait=initial_wait)
