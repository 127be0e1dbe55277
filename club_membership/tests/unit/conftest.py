"""Unit tests run without a database.

The parent conftest's ``engine`` and ``session`` fixtures are shadowed here so
a unit test that asks for either fails immediately.
"""

import pytest


def _no_database(name: str):  # noqa: ANN202
    @pytest.fixture(name=name)
    def fixture() -> None:
        pytest.fail(f"unit tests must not request the {name!r} fixture")

    return fixture


engine = _no_database("engine")
session = _no_database("session")
