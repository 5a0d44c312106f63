"""
Constants used throughout the Garage operator.

This module defines all constant values used by the operator including:
- Custom resource coordinates
- Finalizer and field manager names
- Resource labels and annotations
- Default configuration values and requeue intervals
"""

# Custom resource coordinates
API_GROUP = "deuxfleurs.fr"
API_VERSION = "v0alpha"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

GARAGE_KIND = "Garage"
GARAGE_PLURAL = "garages"
BUCKET_KIND = "Bucket"
BUCKET_PLURAL = "buckets"
ACCESS_KEY_KIND = "AccessKey"
ACCESS_KEY_PLURAL = "accesskeys"

# Finalizer blocking Garage deletion until the operator has reacted to it
GARAGE_FINALIZER = "garage.deuxfleurs.fr"

# Server-side apply field manager, also used as event reporter
FIELD_MANAGER = "garage-operator"
OPERATOR_NAME = "garage-operator"

# Label constants for resource identification and management
NAME_LABEL_KEY = "app.kubernetes.io/name"
VERSION_LABEL_KEY = "app.kubernetes.io/version"
MANAGED_BY_LABEL_KEY = "app.kubernetes.io/managed-by"
MANAGED_BY_LABEL_VALUE = OPERATOR_NAME

# Annotation pointing a credential secret back at its Garage instance
GARAGE_REF_ANNOTATION = "deuxfleurs.fr/garage-ref"

# Layout tags attached to nodes registered by the operator
LAYOUT_OWNER_TAG = "owned-by/garage-operator"
LAYOUT_INSTANCE_TAG_PREFIX = "garage-instance/"

# Workload defaults
GARAGE_IMAGE = "dxflrs/garage"
GARAGE_REPLICAS = 1
CONFIG_FILE_NAME = "garage.toml"
SECRET_DATA_KEY = "key"
SECRET_FILE_MODE = 0o600
ADMIN_SECRET_KIND = "admin"
RPC_SECRET_KIND = "rpc"

# Mount paths inside the Garage container
CONFIG_MOUNT_PATH = "/etc/garage.toml"
SECRETS_MOUNT_DIR = "/secrets"
META_MOUNT_PATH = "/mnt/meta"
DATA_MOUNT_PREFIX = "/mnt/data"
DATA_CONFIG_PREFIX = "/mnt/disk"

# Default Garage configuration values
DEFAULT_ADMIN_PORT = 3903
DEFAULT_RPC_PORT = 3901
DEFAULT_S3_API_PORT = 3900
DEFAULT_S3_WEB_PORT = 3902
DEFAULT_REGION = "garage"
DEFAULT_REPLICATION_MODE = "none"

# Admin API
ADMIN_API_PREFIX = "v1"
ADMIN_CONNECT_TIMEOUT = 5.0
ADMIN_REQUEST_TIMEOUT = 60.0
FIRST_LAYOUT_VERSION = 1

# Requeue intervals in seconds
REQUEUE_SHORT = 2.0
REQUEUE_CONFIGURE = 1.0
REQUEUE_IDLE = 3600.0
REQUEUE_ERRORED = 15.0
REQUEUE_TRANSIENT_ERROR = 300.0

# Event reasons
EVENT_LAYOUT_REQUESTED = "LayoutRequested"
EVENT_DELETE_REQUESTED = "DeleteRequested"

# Credential secret entries for access keys
AWS_ACCESS_KEY_ID = "AWS_ACCESS_KEY_ID"
AWS_SECRET_ACCESS_KEY = "AWS_SECRET_ACCESS_KEY"
AWS_DEFAULT_REGION = "AWS_DEFAULT_REGION"
AWS_ENDPOINT_URL = "AWS_ENDPOINT_URL"
