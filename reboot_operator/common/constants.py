"""
Annotation Wire Contract

Keys and values shared with the per-machine reboot agent.
They must match the agent byte-for-byte.
"""

# Set only by the operator
ANNOTATION_OK_TO_REBOOT = "OkToReboot"

# Set only by the agent (or an operator, for RebootPaused)
ANNOTATION_REBOOT_NEEDED = "RebootNeeded"
ANNOTATION_REBOOT_IN_PROGRESS = "RebootInProgress"
ANNOTATION_REBOOT_PAUSED = "RebootPaused"

TRUE = "true"
FALSE = "false"

EVENT_REASON_REBOOT_FAILED = "reboot failed"
EVENT_SOURCE_COMPONENT = "reboot-operator"

# Standard in-cluster service account mount
SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"
IN_CLUSTER_API_URL = "https://kubernetes.default.svc"
