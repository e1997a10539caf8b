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
"""Runs many independent certificate requests with bounded parallelism."""
import concurrent.futures
import logging
from typing import Callable, List, Sequence, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4

RequestT = TypeVar("RequestT")
ResultT = TypeVar("ResultT")


def issue_all(
        requests: Sequence[RequestT],
        issue_one: Callable[[RequestT], ResultT],
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY
) -> List[ResultT]:
    """
    Runs `issue_one` for every request, never more than `max_concurrency` at a time.

    The first failure wins: as soon as one request raises, requests that have not started yet are cancelled and the
    error is raised to the caller. Requests already in flight keep running in their worker threads, but their
    outcomes are discarded. Certificates issued before the failure are not rolled back.

    Args:
        requests (list): The certificate requests to run.
        issue_one (callable): Runs one request and returns its result.
        max_concurrency (int): The maximum number of requests running at once.

    Returns:
        list: The results, in request order.
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be at least 1")
    if not requests:
        return []

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_concurrency, thread_name_prefix="issue")
    futures = [executor.submit(issue_one, request) for request in requests]
    pending = set(futures)
    try:
        while pending:
            done, pending = concurrent.futures.wait(pending, return_when=concurrent.futures.FIRST_EXCEPTION)
            for future in done:
                if future.exception() is not None:
                    logger.error("Certificate request failed: %s", future.exception())
                    executor.shutdown(wait=False, cancel_futures=True)
                    raise future.exception()
    finally:
        executor.shutdown(wait=False)

    return [future.result() for future in futures]
