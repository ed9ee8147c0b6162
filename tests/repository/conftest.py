"""Fixtures running repository tests against every shipped storage engine."""

import pytest

from tests.engines import Engine
from tests.entities import Customer, Order, SqlCustomer, SqlOrder


@pytest.fixture(params=["memory", "sql"])
def engine(request: pytest.FixtureRequest) -> Engine:
    if request.param == "memory":
        return Engine("memory", request.getfixturevalue("memory_factory"), Order, Customer)
    return Engine("sql", request.getfixturevalue("sql_factory"), SqlOrder, SqlCustomer)


@pytest.fixture
def seeded_engine(engine: Engine) -> Engine:
    """Engine holding orders 1..3, order 1 placed by customer 'ada'."""
    with engine.factory.create() as uow:
        ada = engine.customer(1, "ada")
        if engine.name == "sql":
            uow.repository(engine.customer_type).add(ada)
        uow.repository(engine.order_type).add_range(
            [
                engine.order(1, 10, "open", customer=ada),
                engine.order(2, 25, "shipped"),
                engine.order(3, 40, None),
            ],
        )
        uow.commit()
    return engine
