import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield


@pytest.fixture()
def settings(engine):
    from shared.config import Settings

    return Settings(
        database_uri=str(engine.url),
        gateway="fake",
        capture_max_attempts=3,
        capture_backoff_base=0.01,
        capture_backoff_max=0.05,
        env="test",
    )


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def orchestrator(settings, engine, fake_gateway, sleeps):
    from ordering.checkout.factory import build_orchestrator

    return build_orchestrator(settings, engine=engine, gateway=fake_gateway, sleep=sleeps.append)


@pytest.fixture()
def make_request():
    """Build a valid CheckoutRequest for the given (variant, quantity) pairs."""
    from ordering.checkout.request import CartLine, CheckoutRequest, RecipientDetails

    def _make(*pairs, user_id="user-1", prime="prime-1", freight=60.0, nonce=None, **overrides):
        fields = dict(
            user_id=user_id,
            lines=tuple(CartLine(variant=variant, name="Item", quantity=qty) for variant, qty in pairs),
            shipping="delivery",
            payment="credit_card",
            recipient=RecipientDetails(
                name="Luke Lin",
                phone="0987654321",
                email="luke@example.com",
                address="No. 7, Section 5, Xinyi Road, Taipei",
                time="morning",
            ),
            freight=freight,
            prime=prime,
            nonce=nonce,
        )
        fields.update(overrides)
        return CheckoutRequest(**fields)

    return _make
