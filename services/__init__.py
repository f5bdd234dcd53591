"""
Orchestration Services - Explicit Exports.

Business logic of the orchestration core, built on the infrastructure
interfaces. Everything a process entry point needs is imported here
explicitly; there is no registration or auto-discovery.

Layering (leaves first):
    data_evolution          Plugin lineage across executions
    dataset_execution_info  Derived dataset summary
    workflow_validator      Workflow checks and predecessor resolution
    plugin_tasks            External task preparation per plugin
    orchestrator_service    Public facade (admission, cancel, queries)
    worker_manager          Queue consumer and execution supervisors
    failsafe_service        Re-enqueues stranded executions
    scheduler_service       Admits scheduled workflows

Example:
    from infrastructure import RepositoryFactory
    from services import OrchestratorService

    orchestrator = OrchestratorService(RepositoryFactory.create_components())
"""

from .data_evolution import DataEvolutionService
from .dataset_execution_info import DatasetExecutionInfoService, is_dataset_depublished
from .workflow_validator import WorkflowValidator
from .plugin_tasks import PluginTaskBuilder
from .orchestrator_service import OrchestratorService
from .worker_manager import WorkerManager, ExecutionSupervisor
from .failsafe_service import FailsafeService
from .scheduler_service import SchedulerService, project_pointer_date

__all__ = [
    'DataEvolutionService',
    'DatasetExecutionInfoService',
    'is_dataset_depublished',
    'WorkflowValidator',
    'PluginTaskBuilder',
    'OrchestratorService',
    'WorkerManager',
    'ExecutionSupervisor',
    'FailsafeService',
    'SchedulerService',
    'project_pointer_date',
]
