"""Configuration settings for the Workload Reconciler."""

# Reconciliation loop defaults
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_POLICY = "pending-pods"

# Resource reduction: each step multiplies requests/limits by this factor
REDUCTION_FACTOR = 0.5

# Floors for ReduceResourceFootprint, never patched below these
MIN_CPU_REQUEST = "25m"
MIN_MEMORY_REQUEST = "32Mi"
MIN_CPU_LIMIT = "50m"
MIN_MEMORY_LIMIT = "64Mi"

# Pod deletion
DELETE_GRACE_PERIOD_SECONDS = 0

# Service exposure
EXTERNAL_SERVICE_TYPE = "NodePort"
EXTERNAL_SERVICE_TYPES = ("NodePort", "LoadBalancer")

# Deployment annotations
ORIGINAL_RESOURCES_ANNOTATION = "workload-reconciler/original-resources"
LAST_REMEDIATED_ANNOTATION = "workload-reconciler/last-remediated-at"

# Scheduling failure messages that mean the cluster lacks capacity
INSUFFICIENT_RESOURCE_PATTERNS = [
    r"Insufficient cpu",
    r"Insufficient memory",
]

# Container waiting reasons that mean the image cannot be pulled
IMAGE_PULL_FAILURE_REASONS = {
    "ErrImagePull",
    "ImagePullBackOff",
    "InvalidImageName",
    "ErrImageNeverPull",
    "ImageInspectError",
}

# API call timeout passed to list/get requests
API_TIMEOUT_SECONDS = 30

# Image rebuild (kind clusters)
DEFAULT_KIND_CLUSTER = "kind"
BUILD_TIMEOUT_SECONDS = 600
