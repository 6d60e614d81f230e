"""Constants for the In-Cluster Provider."""

# API Group
API_GROUP = "incluster.cloud37.dev"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_POSTGRES = "Postgres"
KIND_OPERATOR = "Operator"

# Plurals
PLURAL_POSTGRES = "postgreses"
PLURAL_OPERATOR = "operators"
PLURAL_PROVIDER_CONFIG = "providerconfigs"

# Labels
LABEL_MANAGED_BY = f"{API_GROUP}/managed-by"
LABEL_DEPLOYMENT = "deployment"

# Finalizers
FINALIZER = f"{API_GROUP}/finalizer"

# Field Manager
FIELD_MANAGER = "incluster-provider"
CONTROLLER_NAME = "incluster-provider"

# Condition Types
COND_READY = "Ready"
COND_SYNCED = "Synced"

# Condition Reasons
REASON_CREATING = "Creating"
REASON_AVAILABLE = "Available"
REASON_DELETING = "Deleting"
REASON_RECONCILE_SUCCESS = "ReconcileSuccess"
REASON_RECONCILE_ERROR = "ReconcileError"

# Event Reasons
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_CREATED_EXTERNAL = "CreatedExternalResource"
EVENT_REASON_DELETED_EXTERNAL = "DeletedExternalResource"
EVENT_REASON_PUBLISH_FAILED = "CannotPublishConnectionDetails"

# Connection details keys
CONNECTION_KEY_USERNAME = "username"
CONNECTION_KEY_PASSWORD = "password"
CONNECTION_KEY_PORT = "port"
CONNECTION_KEY_DATABASE = "database"
CONNECTION_KEY_ENDPOINT = "endpoint"

# Postgres workload
POSTGRES_IMAGE = "postgres:13.0"
POSTGRES_DEFAULT_PORT = 5432
POSTGRES_DATA_PATH = "/var/lib/pgsql/data"
DEFAULT_STORAGE_CLASS = "Standard"
DEFAULT_MASTER_USERNAME = "postgres"
DEFAULT_NAMESPACE = "default"
NAMESPACE_PREFIX_OPENSHIFT = "openshift-"
OPENSHIFT_POSTGRES_GROUP_ID = 26

# Operator Lifecycle Manager
OLM_GROUP = "operators.coreos.com"
OLM_VERSION = "v1alpha1"
PACKAGES_GROUP = "packages.operators.coreos.com"
PACKAGES_VERSION = "v1"
PLURAL_SUBSCRIPTION = "subscriptions"
PLURAL_CSV = "clusterserviceversions"
PLURAL_PACKAGE_MANIFEST = "packagemanifests"
CSV_PHASE_SUCCEEDED = "Succeeded"

# Generated password length (hex characters)
PASSWORD_LENGTH = 32
