"""
Request executor: one unit of work from payload to classified outcome.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from errors import PayloadError
from outcomes import Aborted, Outcome, RawResult, classify, setup_failure
from payloads import RequestPayload

PayloadBuilder = Callable[[], RequestPayload]
SendRequest = Callable[[RequestPayload], Awaitable[RawResult]]


class RequestExecutor:
    """
    Builds a payload, sends it and times the call.

    The executor never writes to shared statistics; it only returns the
    outcome for the caller to hand to the aggregator.
    """

    def __init__(
        self,
        build_payload: PayloadBuilder,
        send_request: SendRequest,
        timeout: Optional[float] = None,
    ):
        self.build_payload = build_payload
        self.send_request = send_request
        self.timeout = timeout if timeout else None

    async def execute(self, request_id: int) -> Outcome:
        try:
            payload = self.build_payload()
        except PayloadError as e:
            return setup_failure(request_id, str(e))
        except Exception as e:
            return setup_failure(request_id, f"Payload error: {e}")

        start = time.perf_counter()
        try:
            raw = await asyncio.wait_for(self.send_request(payload), timeout=self.timeout)
        except asyncio.TimeoutError:
            raw = Aborted()
        except Exception as e:
            return setup_failure(request_id, f"Request error: {e}")
        elapsed_ms = (time.perf_counter() - start) * 1000

        return classify(request_id, raw, elapsed_ms)

    __call__ = execute
