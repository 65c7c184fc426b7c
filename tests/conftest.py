import asyncio
import json

import pytest


class Pause:
    """Inside a FakeResponse chunk script: stall for `seconds` (forever when None)."""

    def __init__(self, seconds=None):
        self.seconds = seconds


class FakeResponse:
    """Stands in for a streamed curl_cffi response."""

    def __init__(self, status_code=200, chunks=(), body=b"", json_data=None):
        self.status_code = status_code
        self.chunks = list(chunks)
        self.body = body
        self.json_data = json_data
        self.closed = False
        self.read_cancelled = False

    async def aiter_content(self):
        try:
            for item in self.chunks:
                if isinstance(item, Pause):
                    if item.seconds is None:
                        await asyncio.Event().wait()
                    else:
                        await asyncio.sleep(item.seconds)
                elif isinstance(item, BaseException):
                    raise item
                else:
                    yield item
        except asyncio.CancelledError:
            self.read_cancelled = True
            raise

    async def acontent(self):
        return self.body

    def json(self):
        if isinstance(self.json_data, BaseException):
            raise self.json_data
        return self.json_data

    async def aclose(self):
        self.closed = True


class FakeSession:
    """
    Stands in for curl_cffi's AsyncSession. Each get() consumes the next
    scripted outcome; the last one is reused once the script runs out.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []
        self.closed = False

    async def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Pause):
            await asyncio.sleep(outcome.seconds if outcome.seconds is not None else 3600)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()


class SleepRecorder:
    """Replacement for asyncio.sleep that records backoff delays without waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def data_line(link, **fields):
    record = {"link": link, **fields}
    return f"data:{json.dumps(record)}\n".encode("utf-8")


async def collect(aiterable):
    return [item async for item in aiterable]


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()
