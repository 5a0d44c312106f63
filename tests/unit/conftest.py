"""Shared pytest fixtures for the unit tests."""

from functools import partial

import pytest

from garage_operator.constants import GARAGE_PLURAL
from garage_operator.context import Context, Diagnostics
from garage_operator.observability.metrics import Metrics
from garage_operator.services.controller import GarageController
from garage_operator.services.garage_reconciler import GarageReconciler
from garage_operator.utils.garage_admin import get_garage_admin_client
from tests.fixtures.garage_resources import MINIMAL_GARAGE, NAMESPACE
from tests.utils.fakes import GARAGE_VERSION, FakeGarageAdmin, FakeKubeClient


@pytest.fixture
def fake_kube():
    return FakeKubeClient()


@pytest.fixture
def fake_admin():
    return FakeGarageAdmin()


@pytest.fixture
def metrics():
    return Metrics()


@pytest.fixture
def context(fake_kube, metrics):
    return Context(
        kube=fake_kube,
        metrics=metrics,
        diagnostics=Diagnostics(),
        garage_version=GARAGE_VERSION,
    )


@pytest.fixture
def admin_factory(fake_admin):
    """Real admin client factory routed to the fake admin API."""
    return partial(get_garage_admin_client, transport=fake_admin.transport)


@pytest.fixture
def garage_reconciler(admin_factory):
    return GarageReconciler(admin_factory=admin_factory)


@pytest.fixture
def controller(context, garage_reconciler):
    return GarageController(context, reconciler=garage_reconciler)


@pytest.fixture
def demo_garage(fake_kube):
    """The ``demo`` instance with its claims bound."""
    fake_kube.add_pvc(NAMESPACE, "pvc-m", capacity="1Gi")
    fake_kube.add_pvc(NAMESPACE, "pvc-d0", capacity="10Gi")
    return fake_kube.add_object(GARAGE_PLURAL, MINIMAL_GARAGE)
