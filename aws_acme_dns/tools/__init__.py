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
"""DNS tools to observe challenge records the way external resolvers see them."""
import logging

import dns.exception
import dns.resolver

logger = logging.getLogger(__name__)

# Answers that only mean "the record is not visible yet"
NOT_VISIBLE_YET = (
    dns.resolver.NXDOMAIN,
    dns.resolver.NoAnswer,
    dns.resolver.NoNameservers,
    dns.exception.Timeout,
)


class TXTQuery:
    """A TXT record query that never answers from a cache."""

    def __init__(self, domain: str, nameservers: list = None, round_robin: bool = False) -> None:
        """
        Args:
            domain (str): The fully qualified record name to query.
            nameservers (list): Nameservers to query. Defaults to the system resolver configuration.
            round_robin (bool): Rotate between each nameserver instead of the default fail-over method.
        """
        self.domain = domain
        self.round_robin = round_robin
        self.nameservers = list(nameservers) if nameservers else None
        self.values = []
        self.last_nameserver = ""

    def resolve(self) -> list:
        """
        Queries the nameservers for the TXT values of our domain. A new resolver without a cache is used on every
        call so a previous (negative or stale) answer is never reused.

        Returns:
            list: The TXT values, each one with its character-strings joined. Empty when the record is not visible.
        """
        # Explicit nameservers replace the system configuration, which is then never read
        if self.nameservers:
            resolver = dns.resolver.Resolver(configure=False)
            resolver.nameservers = self.nameservers
        else:
            resolver = dns.resolver.Resolver()
        resolver.cache = None

        try:
            answer = resolver.resolve(self.domain, "TXT")
            self.values = [b"".join(rdata.strings).decode("utf-8", "replace") for rdata in answer]
        except NOT_VISIBLE_YET as err:
            logger.debug("TXT lookup for %s returned no answer: %s", self.domain, err)
            self.values = []

        # Rotate the nameservers if round robin mode is enabled
        if self.round_robin and self.nameservers and len(self.nameservers) > 1:
            self.last_nameserver = self.nameservers[0]
            self.nameservers = self.nameservers[1:] + [self.last_nameserver]

        return self.values
