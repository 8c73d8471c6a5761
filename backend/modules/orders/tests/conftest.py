# backend/modules/orders/tests/conftest.py

import pytest

from modules.tax.tests.factories import seed_nyc


@pytest.fixture
def nyc(db_session):
    """New York State, New York and Kings counties and New York City"""
    return seed_nyc(db_session)
