"""
Shared test config
"""
# Standard
from unittest import mock

# Third Party
import kubernetes
import pytest

# Local
from jobsync.test_helpers.helpers import configure_logging

configure_logging()


@pytest.fixture(autouse=True)
def no_local_kubeconfig():
    """This fixture makes sure the tests run as if neither a service account
    nor a KUBECONFIG is available, even if they are
    """
    with mock.patch(
        "kubernetes.config.load_incluster_config",
        side_effect=kubernetes.config.ConfigException("no in-cluster config"),
    ), mock.patch(
        "kubernetes.config.new_client_from_config",
        side_effect=kubernetes.config.ConfigException("no kubeconfig"),
    ):
        yield
