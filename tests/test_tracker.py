import pytest
from prometheus_client import REGISTRY

from twofactor import tracker
from twofactor.tracker import track_latency


@pytest.mark.asyncio
async def test_track_latency_counts_calls():
    @track_latency("unit_test")
    async def endpoint(value):
        """Endpoint docs."""
        return value * 2

    before = REGISTRY.get_sample_value("auth_request_latency_seconds_count", {"endpoint": "unit_test"}) or 0

    assert await endpoint(21) == 42
    assert REGISTRY.get_sample_value("auth_request_latency_seconds_count", {"endpoint": "unit_test"}) == before + 1
    assert endpoint.__name__ == "endpoint"
    assert endpoint.__doc__ == "Endpoint docs."


def test_module_is_documented():
    assert tracker.__doc__
    assert track_latency.__doc__
