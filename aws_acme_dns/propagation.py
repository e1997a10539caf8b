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
"""Verification that a published challenge record is visible in public DNS."""
import dataclasses
import logging
import time
from typing import Callable, Optional

from . import errors
from . import tools
from .providers import ConstantDelay, InitialWaitStrategy, TrackChangeStatus

logger = logging.getLogger(__name__)

POLLING_INTERVAL = 10
DEFAULT_PROPAGATION_TIMEOUT = 90


@dataclasses.dataclass(frozen=True)
class ChallengeRecord:
    """A challenge TXT record that was written to a DNS backend, and how to wait for the write to settle."""
    record_name: str
    txt_value: str
    initial_wait: InitialWaitStrategy

    def wait_for_propagation(
            self,
            timeout: int = DEFAULT_PROPAGATION_TIMEOUT,
            nameservers: list = None,
            interval: int = POLLING_INTERVAL,
            query: Optional[tools.TXTQuery] = None,
            sleep: Callable[[float], None] = time.sleep,
            clock: Callable[[], float] = time.monotonic
    ) -> bool:
        """
        Waits out the initial strategy, then polls public DNS until the expected TXT value is observed. The backend
        acknowledging the write is never taken as proof the value is visible.

        Args:
            timeout (int): The overall amount of time (in seconds) to wait, initial phase included.
            nameservers (list): Nameservers to query. Defaults to the system resolver configuration.
            interval (int): The amount of time (in seconds) between backend status checks and DNS queries.
            query (aws_acme_dns.tools.TXTQuery): The query to run. Defaults to a cache-less TXT query of `record_name`.
            sleep (callable): Sleep function, replaceable in tests.
            clock (callable): Monotonic clock function, replaceable in tests.

        Returns:
            bool: True once the record holds the expected value.

        Raises:
            aws_acme_dns.errors.DnsPropagationTimeout: When the value is not observed before the timeout.
            aws_acme_dns.errors.ProviderError: When the backend change status cannot be read.
        """
        query = query if query else tools.TXTQuery(self.record_name, nameservers=nameservers, round_robin=True)
        start = clock()

        # Initial phase, let the backend settle before querying DNS at all
        if isinstance(self.initial_wait, ConstantDelay):
            if self.initial_wait.seconds > interval:
                sleep(self.initial_wait.seconds - interval)
        elif isinstance(self.initial_wait, TrackChangeStatus):
            while clock() - start < timeout:
                if self.initial_wait.provider.change_in_sync(self.initial_wait.change_id):
                    break
                sleep(interval)

        # Polling phase
        while clock() - start < timeout:
            sleep(interval)
            values = query.resolve()
            logger.debug("TXT %s -> %s", self.record_name, values)
            if self.txt_value in values:
                logger.info("Challenge record %s has propagated", self.record_name)
                return True

        raise errors.DnsPropagationTimeout(
            f"TXT record '{self.record_name}' did not resolve to the expected value within {timeout} seconds."
        )
