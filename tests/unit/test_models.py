"""
Unit tests for the Garage, Bucket and AccessKey models.

Covers defaults, camelCase aliases, derived names and the conversion of
pydantic validation failures into the operator's Illegal* errors.
"""

import pytest

from garage_operator.errors import IllegalAccessKey, IllegalBucket, IllegalGarage
from garage_operator.models import (
    AccessKey,
    Bucket,
    Garage,
    GarageState,
    KeyPermissions,
    ResourceState,
    is_valid_transition,
)
from garage_operator.models.garage_api import KeyInfo, NodesInfo
from tests.fixtures.garage_resources import (
    BUCKET_WITHOUT_GARAGE_NAMESPACE,
    COMPLETE_GARAGE,
    GARAGE_WITHOUT_STORAGE,
    MINIMAL_GARAGE,
    PHOTOS_BUCKET,
    READER_KEY,
    resource,
    with_status,
)


class TestGarage:
    """Tests for the Garage model."""

    def test_defaults_applied(self):
        garage = Garage.from_body(MINIMAL_GARAGE)

        ports = garage.spec.config.ports
        assert (ports.admin, ports.rpc, ports.s3_api, ports.s3_web) == (
            3903,
            3901,
            3900,
            3902,
        )
        assert garage.spec.config.region == "garage"
        assert garage.spec.config.replication_mode == "none"
        assert garage.spec.secrets.admin is None
        assert garage.status.state == GarageState.CREATING
        assert garage.status.capacity == 0

    def test_camel_case_fields_parsed(self):
        garage = Garage.from_body(COMPLETE_GARAGE)

        assert garage.spec.auto_layout is False
        assert garage.spec.config.ports.s3_api == 8002
        assert garage.spec.config.ports.s3_web == 8003
        assert garage.spec.config.replication_mode == "3"
        assert garage.spec.storage.data == ["garage-data-0", "garage-data-1"]

    def test_status_parsed(self):
        body = with_status(
            MINIMAL_GARAGE, state="LayingOut", capacity=42, observedGeneration=1
        )

        garage = Garage.from_body(body)

        assert garage.status.state == GarageState.LAYING_OUT
        assert garage.status.capacity == 42
        assert garage.status.observed_generation == 1

    def test_derived_names(self):
        garage = Garage.from_body(MINIMAL_GARAGE)

        assert garage.key == ("storage", "demo")
        assert garage.prefixed_name("config") == "demo-config"
        assert garage.prefixed_name("api") == "demo-api"
        assert garage.secret_name("admin") == "demo-admin.key"
        assert garage.secret_name("rpc") == "demo-rpc.key"

    def test_prefixed_name_is_injective(self):
        garage = Garage.from_body(MINIMAL_GARAGE)
        suffixes = ["api", "config", "admin.key", "rpc.key", "a", "ap"]

        names = {garage.prefixed_name(suffix) for suffix in suffixes}

        assert len(names) == len(suffixes)

    def test_secret_references_override_generated_names(self):
        garage = Garage.from_body(COMPLETE_GARAGE)

        assert garage.secret_name("admin") == "garage-admin-manual.key"
        assert garage.secret_name("rpc") == "garage-rpc-manual.key"

    @pytest.mark.parametrize("kind", ["admin", "rpc"])
    def test_secret_in_other_namespace_is_illegal(self, kind):
        body = resource(COMPLETE_GARAGE)
        body["spec"]["secrets"][kind]["namespace"] = "elsewhere"

        with pytest.raises(IllegalGarage) as exc_info:
            Garage.from_body(body)

        assert f"secrets.{kind}" in exc_info.value.reason

    def test_secret_in_own_namespace_is_accepted(self):
        body = resource(COMPLETE_GARAGE)
        body["spec"]["secrets"]["admin"]["namespace"] = "garage"

        assert Garage.from_body(body).spec.secrets.admin.namespace == "garage"

    def test_endpoints(self):
        garage = Garage.from_body(MINIMAL_GARAGE)

        assert garage.service_host() == "demo-api.storage.svc.cluster.local"
        assert garage.admin_url() == "http://demo-api.storage.svc.cluster.local:3903"
        assert garage.s3_endpoint() == "http://demo-api.storage.svc.cluster.local:3900"

    def test_missing_storage_is_illegal(self):
        with pytest.raises(IllegalGarage) as exc_info:
            Garage.from_body(GARAGE_WITHOUT_STORAGE)

        assert exc_info.value.name == "broken"
        assert "storage" in exc_info.value.reason
        assert exc_info.value.is_validation

    def test_empty_data_claims_are_illegal(self):
        body = resource(MINIMAL_GARAGE)
        body["spec"]["storage"]["data"] = []

        with pytest.raises(IllegalGarage):
            Garage.from_body(body)

    def test_port_out_of_range_is_illegal(self):
        body = resource(MINIMAL_GARAGE)
        body["spec"]["config"] = {"ports": {"admin": 70000}}

        with pytest.raises(IllegalGarage):
            Garage.from_body(body)

    def test_unknown_state_is_illegal(self):
        with pytest.raises(IllegalGarage):
            Garage.from_body(with_status(MINIMAL_GARAGE, state="Exploded"))


class TestBucket:
    """Tests for the Bucket model."""

    def test_parse(self):
        bucket = Bucket.from_body(PHOTOS_BUCKET)

        assert bucket.name == "photos"
        assert bucket.spec.garage_ref.key == ("storage", "demo")
        assert str(bucket.spec.garage_ref) == "storage/demo"
        assert bucket.spec.quotas.max_size == "5Gi"
        assert bucket.spec.quotas.max_object_count is None
        assert bucket.status.id == ""
        assert bucket.status.state == ResourceState.CREATING

    def test_numeric_max_size_is_kept_as_quantity(self):
        body = resource(PHOTOS_BUCKET)
        body["spec"]["quotas"] = {"maxSize": 1024, "maxObjectCount": 10}

        bucket = Bucket.from_body(body)

        assert bucket.spec.quotas.max_size == "1024"
        assert bucket.spec.quotas.max_object_count == 10

    def test_missing_namespace_in_ref_is_illegal(self):
        with pytest.raises(IllegalBucket) as exc_info:
            Bucket.from_body(BUCKET_WITHOUT_GARAGE_NAMESPACE)

        assert "garageRef.namespace" in exc_info.value.reason

    def test_negative_object_count_is_illegal(self):
        body = resource(PHOTOS_BUCKET)
        body["spec"]["quotas"] = {"maxObjectCount": -1}

        with pytest.raises(IllegalBucket):
            Bucket.from_body(body)


class TestAccessKey:
    """Tests for the AccessKey model."""

    def test_parse(self):
        key = AccessKey.from_body(READER_KEY)

        assert key.spec.bucket_ref.key == ("storage", "photos")
        assert key.spec.permissions.read is True
        assert key.spec.permissions.owner is False
        assert key.status.permissions_friendly == ""

    def test_default_secret_location(self):
        key = AccessKey.from_body(READER_KEY)

        assert key.secret_location() == ("storage", "k.photos.key")

    def test_secret_reference_location(self):
        body = resource(READER_KEY)
        body["spec"]["secretRef"] = {"name": "creds", "namespace": "apps"}

        key = AccessKey.from_body(body)

        assert key.secret_location() == ("apps", "creds")

    def test_secret_reference_without_namespace_uses_own(self):
        body = resource(READER_KEY)
        body["spec"]["secretRef"] = {"name": "creds"}

        assert AccessKey.from_body(body).secret_location() == ("storage", "creds")

    def test_missing_bucket_ref_is_illegal(self):
        body = resource(READER_KEY)
        del body["spec"]["bucketRef"]

        with pytest.raises(IllegalAccessKey):
            AccessKey.from_body(body)

    @pytest.mark.parametrize(
        "permissions,expected",
        [
            ({}, "---"),
            ({"read": True}, "R--"),
            ({"read": True, "write": True}, "RW-"),
            ({"read": True, "write": True, "owner": True}, "RWO"),
            ({"owner": True}, "--O"),
        ],
    )
    def test_permissions_friendly(self, permissions, expected):
        assert KeyPermissions(**permissions).friendly() == expected


class TestTransitions:
    """Tests for the state transition table."""

    def test_garage_happy_path(self):
        assert is_valid_transition(GarageState.CREATING, GarageState.LAYING_OUT)
        assert is_valid_transition(GarageState.LAYING_OUT, GarageState.READY)
        assert is_valid_transition(GarageState.ERRORED, GarageState.CREATING)

    def test_garage_cannot_go_back_to_laying_out(self):
        assert not is_valid_transition(GarageState.READY, GarageState.LAYING_OUT)

    def test_anything_may_fail(self):
        assert is_valid_transition(ResourceState.READY, ResourceState.ERRORED)
        assert is_valid_transition(GarageState.LAYING_OUT, GarageState.ERRORED)

    def test_resource_reconfiguration(self):
        assert is_valid_transition(ResourceState.READY, ResourceState.CONFIGURING)
        assert not is_valid_transition(ResourceState.CREATING, ResourceState.READY)


class TestAdminPayloads:
    """Tests for the admin API payload models."""

    def test_nodes_info_staged(self):
        info = NodesInfo.model_validate(
            {
                "node": "abc",
                "layout": {
                    "version": 0,
                    "stagedRoleChanges": [{"id": "abc", "zone": "garage"}],
                },
            }
        )

        assert info.is_staged()

    def test_nodes_info_removal_is_not_staged(self):
        info = NodesInfo.model_validate(
            {
                "node": "abc",
                "layout": {"stagedRoleChanges": [{"id": "abc", "remove": True}]},
            }
        )

        assert not info.is_staged()

    def test_key_info_ignores_unknown_fields(self):
        key = KeyInfo.model_validate(
            {"name": "k", "accessKeyId": "GK1", "permissions": {"createBucket": False}}
        )

        assert key.access_key_id == "GK1"
        assert key.secret_access_key is None
