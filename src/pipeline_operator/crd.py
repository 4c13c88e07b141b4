"""CRD schema constants and helpers."""

# CRD Group and Version
GROUP = "mlpipeline.dev"
VERSION = "v1"

# API version string
API_VERSION = f"{GROUP}/{VERSION}"

# Kinds and plurals
KIND_DATASET = "Dataset"
KIND_MODEL = "Model"
KIND_SERVER = "Server"

PLURAL_DATASETS = "datasets"
PLURAL_MODELS = "models"
PLURAL_SERVERS = "servers"

# Condition types
CONDITION_CONTAINER_READY = "ContainerReady"
CONDITION_DATA_READY = "DataReady"
CONDITION_MODEL_READY = "ModelReady"
CONDITION_SERVER_READY = "ServerReady"

# Condition reasons
REASON_IMAGE_PROVIDED = "ImageProvided"
REASON_IMAGE_BUILT = "ImageBuilt"
REASON_BUILDING = "Building"
REASON_LOADING = "Loading"
REASON_LOADED = "Loaded"
REASON_TRAINING = "Training"
REASON_TRAINED = "Trained"
REASON_DEPLOYING = "Deploying"
REASON_DEPLOYED = "Deployed"
REASON_DATASET_NOT_READY = "DatasetNotReady"
REASON_BASE_MODEL_NOT_READY = "BaseModelNotReady"
REASON_MODEL_NOT_READY = "ModelNotReady"
REASON_JOB_NOT_COMPLETE = "JobNotComplete"
REASON_JOB_FAILED = "JobFailed"
REASON_FAILED = "Failed"

# Labels and annotations
LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
MANAGED_BY = "ml-pipeline-operator"
LABEL_OWNER_KIND = f"{GROUP}/owner-kind"
LABEL_OWNER_NAME = f"{GROUP}/owner-name"
ANNOTATION_DEFAULT_CONTAINER = "kubectl.kubernetes.io/default-container"

# Job name suffixes
SUFFIX_CONTAINER_BUILDER = "container-builder"
SUFFIX_DATA_LOADER = "data-loader"
SUFFIX_MODELLER = "modeller"
SUFFIX_SERVER = "server"

# Service accounts generated in each namespace
SA_CONTAINER_BUILDER = "container-builder"
SA_DATA_LOADER = "data-loader"
SA_MODELLER = "modeller"
SA_MODEL_SERVER = "model-server"

# Pod security context shared by generated workloads
RUN_AS_USER = 1001
RUN_AS_GROUP = 2002
FS_GROUP = 3003

SERVER_PORT = 8080
