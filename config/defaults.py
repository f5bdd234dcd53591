"""
Configuration Defaults - Single source of truth for all default values.

Every configuration model takes its Field defaults from these constant
classes so that defaults are declared once and documented in one place.

Organization:
    - DatabaseDefaults: PostgreSQL connection and retry settings
    - QueueDefaults: Execution queue (in-memory or Service Bus)
    - OrchestrationDefaults: Worker pool, loop periods, commit window
    - LockDefaults: Lock watchdog and acquisition polling
    - DepublishDefaults: Depublish registry limits
    - RequestLimitDefaults: Page sizes for paged queries
    - ExternalTaskDefaults: External task service client
    - AppDefaults: Backend selection, worker health port

Usage:
    from config.defaults import OrchestrationDefaults

    max_concurrent_threads: int = Field(default=OrchestrationDefaults.MAX_CONCURRENT_THREADS, ...)
"""


# =============================================================================
# DATABASE DEFAULTS
# =============================================================================

class DatabaseDefaults:
    """
    PostgreSQL connection defaults.

    Host, database and credentials have no defaults; they are required
    when STORAGE_BACKEND=postgresql.
    """

    PORT = 5432
    APP_SCHEMA = "orchestration"
    CONNECTION_TIMEOUT_SECONDS = 30

    # Read retries on transient connectivity errors
    RETRY_ATTEMPTS = 3
    RETRY_BASE_DELAY_SECS = 0.5
    RETRY_MAX_DELAY_SECS = 8.0

    MANAGED_IDENTITY_SCOPE = "https://ossrdbms-aad.database.windows.net/.default"


# =============================================================================
# QUEUE DEFAULTS
# =============================================================================

class QueueDefaults:
    """
    Execution queue defaults.

    The Service Bus backend declares one queue per priority class:
    "{QUEUE_PREFIX}-p0" ... "{QUEUE_PREFIX}-p{HIGHEST_PRIORITY}".
    """

    HIGHEST_PRIORITY = 10
    QUEUE_PREFIX = "workflow-executions"
    RETRY_COUNT = 3
    RETRY_DELAY_SECS = 1.0
    MAX_WAIT_SECS = 1


# =============================================================================
# ORCHESTRATION DEFAULTS
# =============================================================================

class OrchestrationDefaults:
    """
    Worker pool and periodic loop defaults.
    """

    MAX_CONCURRENT_THREADS = 4
    MONITOR_CHECK_INTERVAL_SECS = 5
    PERIODIC_FAILSAFE_CHECK_SECS = 60
    PERIODIC_SCHEDULER_CHECK_SECS = 90
    SOLR_COMMIT_PERIOD_MINS = 15

    # Executions INQUEUE/RUNNING without an update for this long are stale
    FAILSAFE_STALE_AFTER_MINS = 10

    # Topology option: may LINK_CHECKING run on top of a DEPUBLISH
    LINK_CHECKING_AFTER_DEPUBLISH = True

    SYSTEM_USER = "SYSTEM"


# =============================================================================
# LOCK DEFAULTS
# =============================================================================

class LockDefaults:
    """
    Named lock defaults.

    A holder that stops renewing (crash) loses the lock after
    WATCHDOG_TIMEOUT_SECS.
    """

    WATCHDOG_TIMEOUT_SECS = 30
    ACQUIRE_POLL_INTERVAL_SECS = 0.2

    SUBMIT_LOCK_PREFIX = "submit"
    SCHEDULER_LOCK = "scheduler"
    FAILSAFE_LOCK = "failsafe"


# =============================================================================
# DEPUBLISH DEFAULTS
# =============================================================================

class DepublishDefaults:
    """Depublish registry defaults."""

    MAX_RECORDS_PER_DATASET = 1000


# =============================================================================
# REQUEST LIMIT DEFAULTS
# =============================================================================

class RequestLimitDefaults:
    """Page sizes for paged queries."""

    WORKFLOW_EXECUTIONS_PER_REQUEST = 5
    DEPUBLISHED_RECORDS_PER_REQUEST = 10
    SCHEDULED_WORKFLOWS_PER_REQUEST = 100


# =============================================================================
# EXTERNAL TASK SERVICE DEFAULTS
# =============================================================================

class ExternalTaskDefaults:
    """
    External task service (DPS) client defaults.

    The response timeout bounds a single read; the request timeout bounds
    the whole call including connect.
    """

    BASE_URL = "http://localhost:8080/services"
    RESPONSE_TIMEOUT_SECS = 30.0
    REQUEST_TIMEOUT_SECS = 60.0
    MAX_RETRIES = 3
    RETRY_BASE_DELAY_SECS = 1.0
    ECLOUD_PROVIDER = "metis_provider"


# =============================================================================
# APP DEFAULTS
# =============================================================================

class AppDefaults:
    """
    Application-wide defaults.
    """

    STORAGE_BACKEND_POSTGRESQL = "postgresql"
    STORAGE_BACKEND_MEMORY = "memory"
    VALID_STORAGE_BACKENDS = [STORAGE_BACKEND_POSTGRESQL, STORAGE_BACKEND_MEMORY]
    STORAGE_BACKEND = STORAGE_BACKEND_MEMORY

    ENVIRONMENT = "dev"
    DEBUG_MODE = False
    WORKER_HEALTH_PORT = 8080
