"""Shared BDD fixtures and step definitions for the Marketplace domain."""

import pytest
from pytest_bdd import parsers, then


@pytest.fixture()
def error():
    """Container for the conflict raised by a When step."""
    return {"exc": None}


@then(parsers.cfparse('the {action} is refused with "{code}"'))
def _(error, action, code):
    assert error["exc"] is not None, f"expected the {action} to be refused"
    assert error["exc"].code == code
