"""
Unit tests for the AccessKey state machine and its credential secret.
"""

import pytest

from garage_operator.constants import ACCESS_KEY_PLURAL
from garage_operator.context import AccessKeyContext
from garage_operator.models import AccessKey, Bucket, Garage
from garage_operator.models.garage_api import KeyInfo
from garage_operator.services import AccessKeyReconciler
from garage_operator.services.access_key_reconciler import build_credentials_secret
from garage_operator.utils.garage_admin import GarageAdminClient
from tests.fixtures.garage_resources import (
    MINIMAL_GARAGE,
    PHOTOS_BUCKET,
    READER_KEY,
    resource,
    with_status,
)


@pytest.fixture
async def admin(fake_admin):
    async with GarageAdminClient(
        "http://demo-api.storage.svc.cluster.local:3903/v1",
        "token",
        transport=fake_admin.transport,
    ) as client:
        yield client


@pytest.fixture
def garage():
    return Garage.from_body(MINIMAL_GARAGE)


@pytest.fixture
def ready_bucket(fake_admin):
    bucket_id = fake_admin.add_bucket("photos")
    return Bucket.from_body(
        with_status(PHOTOS_BUCKET, state="Ready", id=bucket_id, observedGeneration=1)
    )


@pytest.fixture
def reconciler():
    return AccessKeyReconciler()


async def step(reconciler, fake_kube, context, garage, admin, bucket, name="k"):
    body = await fake_kube.get_custom_object(ACCESS_KEY_PLURAL, "storage", name)
    key_context = AccessKeyContext(context, garage, admin, bucket)
    return await reconciler.reconcile(AccessKey.from_body(body), key_context)


def key_status(fake_kube, name="k"):
    return fake_kube.object(ACCESS_KEY_PLURAL, "storage", name)["status"]


class TestAccessKeyReconciler:
    @pytest.mark.asyncio
    async def test_creating_creates_key(
        self, reconciler, fake_kube, fake_admin, context, garage, admin, ready_bucket
    ):
        fake_kube.add_object(ACCESS_KEY_PLURAL, READER_KEY)

        action = await step(reconciler, fake_kube, context, garage, admin, ready_bucket)

        assert action.requeue_after == 2
        status = key_status(fake_kube)
        assert status["state"] == "Configuring"
        assert status["id"] == fake_admin.key_by_name("k")["accessKeyId"]
        assert status["permissionsFriendly"] == "RW-"

    @pytest.mark.asyncio
    async def test_existing_key_is_adopted(
        self, reconciler, fake_kube, fake_admin, context, garage, admin, ready_bucket
    ):
        existing = fake_admin.add_key("k")
        fake_kube.add_object(ACCESS_KEY_PLURAL, READER_KEY)

        await step(reconciler, fake_kube, context, garage, admin, ready_bucket)

        assert key_status(fake_kube)["id"] == existing["accessKeyId"]
        assert fake_admin.calls_to("POST", "/key") == []

    @pytest.mark.asyncio
    async def test_configuring_grants_permissions(
        self, reconciler, fake_kube, fake_admin, context, garage, admin, ready_bucket
    ):
        key = fake_admin.add_key("k")
        fake_kube.add_object(
            ACCESS_KEY_PLURAL,
            with_status(READER_KEY, state="Configuring", id=key["accessKeyId"]),
        )

        await step(reconciler, fake_kube, context, garage, admin, ready_bucket)

        assert fake_admin.grants == [
            {
                "bucketId": ready_bucket.status.id,
                "accessKeyId": key["accessKeyId"],
                "permissions": {"read": True, "write": True, "owner": False},
            }
        ]
        assert key_status(fake_kube)["state"] == "Ready"

    @pytest.mark.parametrize("bucket_state", [None, "Creating"])
    @pytest.mark.asyncio
    async def test_configuring_waits_for_bucket(
        self, reconciler, fake_kube, fake_admin, context, garage, admin, bucket_state
    ):
        key = fake_admin.add_key("k")
        fake_kube.add_object(
            ACCESS_KEY_PLURAL,
            with_status(READER_KEY, state="Configuring", id=key["accessKeyId"]),
        )
        bucket = None
        if bucket_state is not None:
            bucket = Bucket.from_body(with_status(PHOTOS_BUCKET, state=bucket_state))

        action = await step(reconciler, fake_kube, context, garage, admin, bucket)

        assert action.requeue_after == 2
        assert key_status(fake_kube)["state"] == "Configuring"
        assert fake_admin.grants == []

    @pytest.mark.asyncio
    async def test_configuring_without_id_starts_over(
        self, reconciler, fake_kube, fake_admin, context, garage, admin, ready_bucket
    ):
        fake_kube.add_object(ACCESS_KEY_PLURAL, with_status(READER_KEY, state="Configuring"))

        await step(reconciler, fake_kube, context, garage, admin, ready_bucket)

        assert key_status(fake_kube)["state"] == "Creating"
        assert fake_admin.grants == []

    @pytest.mark.asyncio
    async def test_grant_for_key_missing_in_garage_recreates(
        self, reconciler, fake_kube, fake_admin, context, garage, admin, ready_bucket
    ):
        fake_kube.add_object(
            ACCESS_KEY_PLURAL,
            with_status(READER_KEY, state="Configuring", id="GKgone"),
        )

        action = await step(reconciler, fake_kube, context, garage, admin, ready_bucket)

        assert action.requeue_after == 15
        assert key_status(fake_kube)["state"] == "Errored"
        assert fake_admin.grants == []

        await step(reconciler, fake_kube, context, garage, admin, ready_bucket)
        await step(reconciler, fake_kube, context, garage, admin, ready_bucket)

        status = key_status(fake_kube)
        assert status["state"] == "Configuring"
        assert status["id"] == fake_admin.key_by_name("k")["accessKeyId"]

    @pytest.mark.asyncio
    async def test_ready_writes_credentials(
        self, reconciler, fake_kube, fake_admin, context, garage, admin, ready_bucket
    ):
        key = fake_admin.add_key("k")
        fake_kube.add_object(
            ACCESS_KEY_PLURAL,
            with_status(READER_KEY, state="Ready", id=key["accessKeyId"], observedGeneration=1),
        )

        action = await step(reconciler, fake_kube, context, garage, admin, ready_bucket)

        assert action.requeue_after == 3600
        assert fake_kube.secret_values("storage", "k.photos.key") == {
            "AWS_ACCESS_KEY_ID": key["accessKeyId"],
            "AWS_SECRET_ACCESS_KEY": key["secretAccessKey"],
            "AWS_DEFAULT_REGION": "garage",
            "AWS_ENDPOINT_URL": "http://demo-api.storage.svc.cluster.local:3900",
        }

    @pytest.mark.asyncio
    async def test_ready_restores_deleted_secret(
        self, reconciler, fake_kube, fake_admin, context, garage, admin, ready_bucket
    ):
        key = fake_admin.add_key("k")
        fake_kube.add_object(
            ACCESS_KEY_PLURAL,
            with_status(READER_KEY, state="Ready", id=key["accessKeyId"], observedGeneration=1),
        )
        await step(reconciler, fake_kube, context, garage, admin, ready_bucket)
        fake_kube.delete_secret("storage", "k.photos.key")

        await step(reconciler, fake_kube, context, garage, admin, ready_bucket)

        assert await fake_kube.secret_exists("storage", "k.photos.key")

    @pytest.mark.asyncio
    async def test_key_deleted_in_garage_is_recreated(
        self, reconciler, fake_kube, fake_admin, context, garage, admin, ready_bucket
    ):
        fake_kube.add_object(
            ACCESS_KEY_PLURAL,
            with_status(READER_KEY, state="Ready", id="GKgone", observedGeneration=1),
        )

        await step(reconciler, fake_kube, context, garage, admin, ready_bucket)

        status = key_status(fake_kube)
        assert status["state"] == "Creating"
        assert status["id"] == ""

    @pytest.mark.asyncio
    async def test_spec_change_grants_again(
        self, reconciler, fake_kube, fake_admin, context, garage, admin, ready_bucket
    ):
        key = fake_admin.add_key("k")
        fake_kube.add_object(
            ACCESS_KEY_PLURAL,
            with_status(READER_KEY, state="Ready", id=key["accessKeyId"], observedGeneration=1),
        )
        fake_kube.bump_generation(
            ACCESS_KEY_PLURAL, "storage", "k", permissions={"read": True, "owner": True}
        )

        await step(reconciler, fake_kube, context, garage, admin, ready_bucket)
        assert key_status(fake_kube)["state"] == "Configuring"

        await step(reconciler, fake_kube, context, garage, admin, ready_bucket)

        assert fake_admin.grants[-1]["permissions"] == {
            "read": True,
            "write": False,
            "owner": True,
        }
        assert key_status(fake_kube)["permissionsFriendly"] == "R-O"

    @pytest.mark.asyncio
    async def test_errored_recovers_through_creating(
        self, reconciler, fake_kube, context, garage, admin, ready_bucket
    ):
        fake_kube.add_object(ACCESS_KEY_PLURAL, with_status(READER_KEY, state="Errored"))

        action = await step(reconciler, fake_kube, context, garage, admin, ready_bucket)

        assert action.requeue_after == 15
        assert key_status(fake_kube)["state"] == "Creating"


class TestCredentialsSecret:
    def info(self):
        return KeyInfo.model_validate(
            {"name": "k", "accessKeyId": "GK1", "secretAccessKey": "s3cr3t"}
        )

    def test_metadata(self, garage):
        key = AccessKey.from_body(READER_KEY)

        secret = build_credentials_secret(key, garage, self.info())

        assert secret.metadata.name == "k.photos.key"
        assert secret.metadata.namespace == "storage"
        assert secret.metadata.labels == {"app.kubernetes.io/managed-by": "garage-operator"}
        assert secret.metadata.annotations == {"deuxfleurs.fr/garage-ref": "storage/demo"}
        owner = secret.metadata.owner_references[0]
        assert (owner.kind, owner.name, owner.uid) == ("AccessKey", "k", key.metadata.uid)

    def test_no_owner_across_namespaces(self, garage):
        body = resource(READER_KEY)
        body["spec"]["secretRef"] = {"name": "creds", "namespace": "apps"}

        secret = build_credentials_secret(AccessKey.from_body(body), garage, self.info())

        assert secret.metadata.namespace == "apps"
        assert secret.metadata.owner_references is None
