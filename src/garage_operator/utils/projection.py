"""
Desired-state projection for Garage instances.

Pure functions mapping a Garage resource to the Kubernetes objects that run
it: a ConfigMap holding garage.toml, the generated admin and RPC secrets, the
API Service and the Deployment. Nothing here talks to the cluster except
``apply_projection``.
"""

import base64
import logging
import secrets
import textwrap
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kubernetes import client

from ..constants import (
    ADMIN_SECRET_KIND,
    CONFIG_FILE_NAME,
    CONFIG_MOUNT_PATH,
    DATA_CONFIG_PREFIX,
    DATA_MOUNT_PREFIX,
    GARAGE_IMAGE,
    GARAGE_REPLICAS,
    META_MOUNT_PATH,
    NAME_LABEL_KEY,
    RPC_SECRET_KIND,
    SECRET_DATA_KEY,
    SECRET_FILE_MODE,
    SECRETS_MOUNT_DIR,
    VERSION_LABEL_KEY,
)
from .kubernetes import owner_reference

if TYPE_CHECKING:
    from ..models import Garage
    from .kubernetes import KubeClient

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = textwrap.dedent(
    """\
    metadata_dir = "{meta_dir}"
    data_dir = [ {data_sources} ]

    db_engine = "lmdb"

    replication_mode = "{replication_mode}"

    rpc_secret_file = "{secrets_dir}/rpc.key"
    rpc_bind_addr = "[::]:{port_rpc}"

    [s3_api]
    s3_region = "{region}"
    api_bind_addr = "[::]:{port_s3}"

    [s3_web]
    bind_addr = "[::]:{port_web}"
    root_domain = ".web.garage.localhost"
    index = "index.html"

    [admin]
    api_bind_addr = "0.0.0.0:{port_admin}"
    admin_token_file = "{secrets_dir}/admin.key"
    """
)


@dataclass
class Projection:
    """Every object derived from one Garage instance."""

    config_map: client.V1ConfigMap
    service: client.V1Service
    deployment: client.V1Deployment
    secrets: list[client.V1Secret] = field(default_factory=list)

    def objects(self) -> list:
        """Objects in apply order: config and credentials before the workload."""
        return [self.config_map, *self.secrets, self.service, self.deployment]


def labels_for(garage: "Garage", garage_version: str) -> dict[str, str]:
    return {
        NAME_LABEL_KEY: garage.name,
        VERSION_LABEL_KEY: garage_version,
    }


def _metadata(
    garage: "Garage", name: str, garage_version: str
) -> client.V1ObjectMeta:
    return client.V1ObjectMeta(
        name=name,
        namespace=garage.namespace,
        labels=labels_for(garage, garage_version),
        owner_references=[owner_reference(garage)],
    )


def generate_secret_value() -> str:
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def render_config(garage: "Garage", capacities: list[int]) -> str:
    """Render garage.toml with one data_dir entry per data claim."""
    ports = garage.spec.config.ports
    data_sources = ", ".join(
        f'{{ path = "{DATA_CONFIG_PREFIX}{i}", capacity = "{capacity}B" }}'
        for i, capacity in enumerate(capacities)
    )
    return CONFIG_TEMPLATE.format(
        meta_dir=META_MOUNT_PATH,
        data_sources=data_sources,
        replication_mode=garage.spec.config.replication_mode,
        secrets_dir=SECRETS_MOUNT_DIR,
        port_rpc=ports.rpc,
        region=garage.spec.config.region,
        port_s3=ports.s3_api,
        port_web=ports.s3_web,
        port_admin=ports.admin,
    )


def build_config_map(
    garage: "Garage", capacities: list[int], garage_version: str
) -> client.V1ConfigMap:
    return client.V1ConfigMap(
        api_version="v1",
        kind="ConfigMap",
        metadata=_metadata(garage, garage.prefixed_name("config"), garage_version),
        data={CONFIG_FILE_NAME: render_config(garage, capacities)},
    )


def build_generated_secrets(
    garage: "Garage", garage_version: str, existing_secrets: set[str]
) -> list[client.V1Secret]:
    """
    Secrets the operator has to create for this instance.

    A secret is generated only when the spec does not reference one and it
    does not exist yet, so a generated value is never rotated.
    """
    references = {
        ADMIN_SECRET_KIND: garage.spec.secrets.admin,
        RPC_SECRET_KIND: garage.spec.secrets.rpc,
    }
    generated = []
    for kind, ref in references.items():
        if ref is not None:
            continue
        name = garage.secret_name(kind)
        if name in existing_secrets:
            continue
        value = base64.b64encode(generate_secret_value().encode()).decode()
        generated.append(
            client.V1Secret(
                api_version="v1",
                kind="Secret",
                metadata=_metadata(garage, name, garage_version),
                type="Opaque",
                data={SECRET_DATA_KEY: value},
            )
        )
    return generated


def _ports(garage: "Garage") -> list[tuple[str, int]]:
    ports = garage.spec.config.ports
    return [
        ("admin", ports.admin),
        ("rpc", ports.rpc),
        ("s3-api", ports.s3_api),
        ("s3-web", ports.s3_web),
    ]


def build_service(garage: "Garage", garage_version: str) -> client.V1Service:
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=_metadata(garage, garage.prefixed_name("api"), garage_version),
        spec=client.V1ServiceSpec(
            selector={NAME_LABEL_KEY: garage.name},
            ports=[
                client.V1ServicePort(
                    name=name, port=port, target_port=port, protocol="TCP"
                )
                for name, port in _ports(garage)
            ],
        ),
    )


def build_deployment(garage: "Garage", garage_version: str) -> client.V1Deployment:
    """
    Build the Garage workload.

    The selector only uses the name label: selectors are immutable and the
    version label changes on upgrades.
    """
    storage = garage.spec.storage
    config_volume = "config"
    admin_volume = "admin-secret"
    rpc_volume = "rpc-secret"
    meta_volume = "meta"

    volumes = [
        client.V1Volume(
            name=config_volume,
            config_map=client.V1ConfigMapVolumeSource(
                name=garage.prefixed_name("config")
            ),
        ),
        client.V1Volume(
            name=admin_volume,
            secret=client.V1SecretVolumeSource(
                secret_name=garage.secret_name(ADMIN_SECRET_KIND),
                default_mode=SECRET_FILE_MODE,
            ),
        ),
        client.V1Volume(
            name=rpc_volume,
            secret=client.V1SecretVolumeSource(
                secret_name=garage.secret_name(RPC_SECRET_KIND),
                default_mode=SECRET_FILE_MODE,
            ),
        ),
        client.V1Volume(
            name=meta_volume,
            persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                claim_name=storage.meta
            ),
        ),
    ]
    mounts = [
        client.V1VolumeMount(
            name=config_volume,
            mount_path=CONFIG_MOUNT_PATH,
            sub_path=CONFIG_FILE_NAME,
            read_only=True,
        ),
        client.V1VolumeMount(
            name=admin_volume,
            mount_path=f"{SECRETS_MOUNT_DIR}/admin.key",
            sub_path=SECRET_DATA_KEY,
            read_only=True,
        ),
        client.V1VolumeMount(
            name=rpc_volume,
            mount_path=f"{SECRETS_MOUNT_DIR}/rpc.key",
            sub_path=SECRET_DATA_KEY,
            read_only=True,
        ),
        client.V1VolumeMount(name=meta_volume, mount_path=META_MOUNT_PATH),
    ]

    for i, claim in enumerate(storage.data):
        volume = f"data{i}"
        volumes.append(
            client.V1Volume(
                name=volume,
                persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                    claim_name=claim
                ),
            )
        )
        mounts.append(
            client.V1VolumeMount(name=volume, mount_path=f"{DATA_MOUNT_PREFIX}{i}")
        )

    container = client.V1Container(
        name="garage",
        image=f"{GARAGE_IMAGE}:{garage_version}",
        ports=[
            client.V1ContainerPort(name=name, container_port=port, protocol="TCP")
            for name, port in _ports(garage)
        ],
        volume_mounts=mounts,
    )

    labels = labels_for(garage, garage_version)
    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=_metadata(garage, garage.name, garage_version),
        spec=client.V1DeploymentSpec(
            replicas=GARAGE_REPLICAS,
            selector=client.V1LabelSelector(
                match_labels={NAME_LABEL_KEY: garage.name}
            ),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels),
                spec=client.V1PodSpec(containers=[container], volumes=volumes),
            ),
        ),
    )


def project(
    garage: "Garage",
    capacities: list[int],
    garage_version: str,
    existing_secrets: set[str],
) -> Projection:
    """
    Map a Garage to the objects that run it.

    Args:
        garage: The instance
        capacities: Capacity in bytes of each data claim, in spec order
        garage_version: Image tag of the Garage container
        existing_secrets: Names of secrets already present in the namespace
    """
    return Projection(
        config_map=build_config_map(garage, capacities, garage_version),
        secrets=build_generated_secrets(garage, garage_version, existing_secrets),
        service=build_service(garage, garage_version),
        deployment=build_deployment(garage, garage_version),
    )


async def apply_projection(projection: Projection, kube: "KubeClient") -> None:
    """Server-side apply every projected object."""
    for obj in projection.objects():
        logger.debug(
            f"Applying {obj.kind} {obj.metadata.namespace}/{obj.metadata.name}"
        )
        await kube.apply(obj)
