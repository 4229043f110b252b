"""Module that adds flags to pytest to enable certain extra tests."""

import pytest

from relayfs.auth import hash_secret

SECRET = "hunter2"


def pytest_addoption(parser):
    parser.addoption(
        "--tunnel",
        action="store_true",
        default=False,
        help="Run tests that open a real SSH tunnel",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "tunnel: mark test as requiring SSH and internet access to run"
    )


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--tunnel"):
        skip_tunnel = pytest.mark.skip(reason="only runs with --tunnel option")

        for item in items:
            if "tunnel" in item.keywords:
                item.add_marker(skip_tunnel)


@pytest.fixture(scope="session")
def secret():
    return SECRET


@pytest.fixture(scope="session")
def token():
    return hash_secret(SECRET)
