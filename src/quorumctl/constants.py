"""
Constants for quorumctl

Centralized definition of magic numbers and strings used throughout the project.
"""

# Database configuration
DEFAULT_POOL_MIN_SIZE = 1
DEFAULT_POOL_MAX_SIZE = 10

# Table names
TABLE_OBJECTS = "quorumctl_objects"
TABLE_ACTIONS = "quorumctl_actions"

# Object kinds in the versioned store
KIND_CLUSTER = "cluster"
KIND_CLUSTER_STATUS = "cluster_status"
KIND_FLEET = "fleet"
KIND_HOST = "host"

# Member identity
DISCOVERY_PORT = 5000
ENGINE_CONTAINER = "engine"
ZONE_LABEL = "topology.zone"
UNKNOWN_ZONE = "unknown"

# Rendered engine configuration keys carrying the formation gate
CONFIG_MINIMUM_MEMBERS = "cluster.formation.minimum_members"
CONFIG_PREFERRED_BOOTSTRAPPER = "cluster.formation.preferred_bootstrapper"
CONFIG_DISCOVERY_SEEDS = "cluster.discovery.seeds"
CONFIG_ROLE_CONSTRAINTS = "cluster.member.role_constraints"

# Keys the engine only reads on its first start. A difference confined to these
# keys never justifies restarting a running member.
STARTUP_ONLY_CONFIG_KEYS = frozenset(
    {
        CONFIG_MINIMUM_MEMBERS,
        CONFIG_PREFERRED_BOOTSTRAPPER,
        CONFIG_DISCOVERY_SEEDS,
    }
)

# Formation
DEFAULT_FORMATION_TIMEOUT_SECONDS = 600
RESTART_MINIMUM_MEMBERS = 1
SPLIT_BRAIN_VIEW_SIMILARITY = 0.8

# Applier backoff defaults (seconds)
DEFAULT_BACKOFF_INITIAL = 0.01
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_BACKOFF_JITTER = 0.1
DEFAULT_BACKOFF_MAX_DELAY = 1.0
DEFAULT_BACKOFF_STEPS = 5
DEFAULT_BACKOFF_MAX_ELAPSED = 5.0

# Scale decision thresholds
SCALE_UP_SCORE = 0.8
SCALE_DOWN_SCORE = 0.2
NEUTRAL_SCORE = 0.5
DEFAULT_METRIC_WEIGHT = 1.0
DEFAULT_MIN_HEALTHY_PRIMARIES = 2
DEFAULT_MIN_REPLICAS_PER_ZONE = 1
DEFAULT_FALLBACK_CONFIDENCE_PENALTY = 0.5
TREND_BAND = 0.1

# Metric thresholds reported alongside collected values
CPU_THRESHOLD = 0.8
MEMORY_THRESHOLD = 0.8
CONNECTION_THRESHOLD = 500.0
THROUGHPUT_THRESHOLD = 200.0

# External time-series source
DEFAULT_PROMETHEUS_URL = "http://prometheus-server:9090"
DEFAULT_PROMETHEUS_TIMEOUT_SECONDS = 5.0
PROMETHEUS_QUERY_PATH = "/api/v1/query"
USER_AGENT = "quorumctl-autoscaler/0.1"

# Supervisor defaults (seconds)
DEFAULT_RECONCILE_INTERVAL = 30.0
DEFAULT_RECONCILE_DEADLINE = 20.0
DEFAULT_DEBOUNCE = 2.0
DEFAULT_WATCH_POLL_INTERVAL = 5.0
DEFAULT_QUEUE_SIZE = 64
DEFAULT_WORKERS = 4

# Observed state schema version
CURRENT_STATUS_VERSION = 1
