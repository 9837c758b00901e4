import pytest

from fakes import FakeClock, FakeSource


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def source():
    return FakeSource()
