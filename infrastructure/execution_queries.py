"""
Execution Selection Helpers.

Plugin and execution selection shared by every ExecutionStore backend.
The PostgreSQL store narrows rows in SQL (dataset, status, dates) and
then applies these helpers, so both backends return identical results.

Exports:
    iter_plugins: (plugin, execution) pairs of a list of executions
    select_successful_plugins: FINISHED plugins of given kinds, newest first
    matches_overview_filter: Plugin status/type filter of the overview
    overview_bucket: Sort bucket of an execution in the overview
    sort_overview: Overview ordering
    sort_executions: Ordering of paged execution listings
    paginate: Slice one page out of a sorted list
"""

from datetime import datetime, timezone
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from core.models import (
    DataStatus,
    ExecutionOrderField,
    Plugin,
    PluginStatus,
    PluginType,
    WorkflowExecution,
    WorkflowStatus,
)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def iter_plugins(
    executions: Iterable[WorkflowExecution]
) -> Iterator[Tuple[Plugin, WorkflowExecution]]:
    for execution in executions:
        for plugin in execution.plugins:
            yield plugin, execution


def _plugin_recency(pair: Tuple[Plugin, WorkflowExecution]) -> Tuple[datetime, datetime]:
    plugin, _ = pair
    return (plugin.started_date or _EPOCH, plugin.finished_date or _EPOCH)


def select_successful_plugins(
    executions: Iterable[WorkflowExecution],
    kinds: Set[PluginType],
    executable_only: bool,
    limit_to_valid: bool = False
) -> List[Tuple[Plugin, WorkflowExecution]]:
    """
    FINISHED plugins whose kind is in `kinds`, newest started first.

    Args:
        executions: Executions of one dataset
        kinds: Accepted plugin kinds
        executable_only: Skip the non-executable reindex kinds
        limit_to_valid: Keep only plugins whose data status is VALID
    """
    selected = []
    for plugin, execution in iter_plugins(executions):
        if plugin.plugin_type not in kinds or plugin.status != PluginStatus.FINISHED:
            continue
        if executable_only and not plugin.executable:
            continue
        if limit_to_valid and plugin.data_status != DataStatus.VALID:
            continue
        selected.append((plugin, execution))
    selected.sort(key=_plugin_recency, reverse=True)
    return selected


def matches_overview_filter(
    execution: WorkflowExecution,
    plugin_statuses: Optional[Set[PluginStatus]],
    plugin_types: Optional[Set[PluginType]]
) -> bool:
    """At least one plugin matches both filters (an absent filter matches all)."""
    if not plugin_statuses and not plugin_types:
        return True
    for plugin in execution.plugins:
        if plugin_statuses and plugin.status not in plugin_statuses:
            continue
        if plugin_types and plugin.plugin_type not in plugin_types:
            continue
        return True
    return False


def overview_bucket(execution: WorkflowExecution) -> int:
    """
    0 INQUEUE, 1 RUNNING, 2 RUNNING with a CLEANING plugin, 3 terminal.
    """
    if execution.status == WorkflowStatus.INQUEUE:
        return 0
    if execution.status == WorkflowStatus.RUNNING:
        if any(p.status == PluginStatus.CLEANING for p in execution.plugins):
            return 2
        return 1
    return 3


def sort_overview(executions: Iterable[WorkflowExecution]) -> List[WorkflowExecution]:
    """Bucket ascending, then createdDate descending within a bucket."""
    by_created = sorted(executions, key=lambda e: e.created_date, reverse=True)
    return sorted(by_created, key=overview_bucket)


def sort_executions(
    executions: Iterable[WorkflowExecution],
    order_field: ExecutionOrderField,
    ascending: bool
) -> List[WorkflowExecution]:
    """Sort by a date field; missing dates sort as the oldest."""
    attribute = order_field.value
    return sorted(
        executions,
        key=lambda e: getattr(e, attribute) or _EPOCH,
        reverse=not ascending
    )


def paginate(items: List, page: int, page_size: int) -> List:
    start = max(page, 0) * page_size
    return items[start:start + page_size]


__all__ = [
    "iter_plugins",
    "select_successful_plugins",
    "matches_overview_filter",
    "overview_bucket",
    "sort_overview",
    "sort_executions",
    "paginate",
]
