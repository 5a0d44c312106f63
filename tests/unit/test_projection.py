"""
Unit tests for the desired-state projection of a Garage instance.

The rendered garage.toml is parsed back with ``tomllib`` so the tests check
the configuration Garage would actually read.
"""

import base64
import re
import tomllib

import pytest

from garage_operator.models import Garage
from garage_operator.utils.projection import (
    apply_projection,
    build_deployment,
    build_generated_secrets,
    build_service,
    project,
    render_config,
)
from tests.fixtures.garage_resources import COMPLETE_GARAGE, MINIMAL_GARAGE

VERSION = "v1.0.1"


@pytest.fixture
def garage():
    return Garage.from_body(MINIMAL_GARAGE)


class TestConfig:
    def test_rendered_config_is_valid_toml(self, garage):
        config = tomllib.loads(render_config(garage, [10737418240]))

        assert config["metadata_dir"] == "/mnt/meta"
        assert config["data_dir"] == [
            {"path": "/mnt/disk0", "capacity": "10737418240B"}
        ]
        assert config["db_engine"] == "lmdb"
        assert config["replication_mode"] == "none"
        assert config["rpc_secret_file"] == "/secrets/rpc.key"
        assert config["rpc_bind_addr"] == "[::]:3901"
        assert config["s3_api"] == {"s3_region": "garage", "api_bind_addr": "[::]:3900"}
        assert config["s3_web"]["bind_addr"] == "[::]:3902"
        assert config["s3_web"]["root_domain"] == ".web.garage.localhost"
        assert config["admin"] == {
            "api_bind_addr": "0.0.0.0:3903",
            "admin_token_file": "/secrets/admin.key",
        }

    def test_one_data_dir_per_claim_in_order(self):
        garage = Garage.from_body(COMPLETE_GARAGE)

        config = tomllib.loads(render_config(garage, [1024, 2048]))

        assert config["data_dir"] == [
            {"path": "/mnt/disk0", "capacity": "1024B"},
            {"path": "/mnt/disk1", "capacity": "2048B"},
        ]
        assert config["replication_mode"] == "3"
        assert config["s3_api"]["s3_region"] == "eu-west"
        assert config["admin"]["api_bind_addr"] == "0.0.0.0:8000"


class TestSecrets:
    def test_generated_secrets_are_64_hex(self, garage):
        secrets = build_generated_secrets(garage, VERSION, set())

        assert [s.metadata.name for s in secrets] == ["demo-admin.key", "demo-rpc.key"]
        for secret in secrets:
            value = base64.b64decode(secret.data["key"]).decode()
            assert re.fullmatch(r"[0-9a-f]{64}", value)
            assert secret.metadata.owner_references[0].kind == "Garage"

    def test_generated_values_differ(self, garage):
        admin, rpc = build_generated_secrets(garage, VERSION, set())

        assert admin.data["key"] != rpc.data["key"]

    def test_existing_secrets_are_not_regenerated(self, garage):
        secrets = build_generated_secrets(garage, VERSION, {"demo-admin.key"})

        assert [s.metadata.name for s in secrets] == ["demo-rpc.key"]

    def test_referenced_secrets_are_not_generated(self):
        garage = Garage.from_body(COMPLETE_GARAGE)

        assert build_generated_secrets(garage, VERSION, set()) == []


class TestService:
    def test_ports_and_selector(self, garage):
        service = build_service(garage, VERSION)

        assert service.metadata.name == "demo-api"
        assert service.spec.selector == {"app.kubernetes.io/name": "demo"}
        assert {(p.name, p.port) for p in service.spec.ports} == {
            ("admin", 3903),
            ("rpc", 3901),
            ("s3-api", 3900),
            ("s3-web", 3902),
        }


class TestDeployment:
    def test_image_and_labels(self, garage):
        deployment = build_deployment(garage, VERSION)

        container = deployment.spec.template.spec.containers[0]
        assert container.image == "dxflrs/garage:v1.0.1"
        assert deployment.metadata.name == "demo"
        assert deployment.spec.replicas == 1
        assert deployment.metadata.labels == {
            "app.kubernetes.io/name": "demo",
            "app.kubernetes.io/version": VERSION,
        }
        assert deployment.metadata.owner_references[0].uid == garage.metadata.uid

    def test_selector_ignores_version(self, garage):
        deployment = build_deployment(garage, VERSION)

        assert deployment.spec.selector.match_labels == {"app.kubernetes.io/name": "demo"}

    def test_volumes_and_mounts(self):
        garage = Garage.from_body(COMPLETE_GARAGE)

        deployment = build_deployment(garage, VERSION)

        pod = deployment.spec.template.spec
        volumes = {v.name: v for v in pod.volumes}
        assert volumes["config"].config_map.name == "garage-config"
        assert volumes["admin-secret"].secret.secret_name == "garage-admin-manual.key"
        assert volumes["admin-secret"].secret.default_mode == 0o600
        assert volumes["rpc-secret"].secret.secret_name == "garage-rpc-manual.key"
        assert volumes["meta"].persistent_volume_claim.claim_name == "garage-meta-storage"
        assert volumes["data0"].persistent_volume_claim.claim_name == "garage-data-0"
        assert volumes["data1"].persistent_volume_claim.claim_name == "garage-data-1"

        mounts = {m.name: m for m in pod.containers[0].volume_mounts}
        assert (mounts["config"].mount_path, mounts["config"].sub_path) == (
            "/etc/garage.toml",
            "garage.toml",
        )
        assert mounts["admin-secret"].mount_path == "/secrets/admin.key"
        assert mounts["rpc-secret"].mount_path == "/secrets/rpc.key"
        assert mounts["meta"].mount_path == "/mnt/meta"
        assert mounts["data0"].mount_path == "/mnt/data0"
        assert mounts["data1"].mount_path == "/mnt/data1"


class TestProjection:
    def test_apply_order(self, garage):
        projection = project(garage, [1024], VERSION, set())

        kinds = [obj.kind for obj in projection.objects()]

        assert kinds == ["ConfigMap", "Secret", "Secret", "Service", "Deployment"]

    @pytest.mark.asyncio
    async def test_apply_projection(self, garage, fake_kube):
        await apply_projection(project(garage, [1024], VERSION, set()), fake_kube)

        assert fake_kube.apply_log == [
            ("ConfigMap", "storage", "demo-config"),
            ("Secret", "storage", "demo-admin.key"),
            ("Secret", "storage", "demo-rpc.key"),
            ("Service", "storage", "demo-api"),
            ("Deployment", "storage", "demo"),
        ]
