import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def checkout_bed():
    from checkout.domain import checkout

    bed = DomainFixture(checkout)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(checkout_bed):
    with checkout_bed.domain_context():
        yield
        for _, provider in current_domain.providers.items():
            provider._data_reset()


@pytest.fixture(autouse=True)
def fake_gateway():
    """A fresh FakeGateway for every test."""
    from checkout.config import get_settings
    from checkout.gateway import reset_gateway, set_gateway
    from checkout.gateway.fake_adapter import FakeGateway

    get_settings.cache_clear()
    gateway = FakeGateway()
    set_gateway(gateway)
    yield gateway
    reset_gateway()
