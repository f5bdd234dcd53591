"""
Plugin Topology and Plugin Groups.

Static partial order over executable plugin kinds: for each kind, the set
of kinds whose output it may consume. Group constants are defined once
as frozensets and shared read-only across threads.

Exports:
    HARVEST_PLUGIN_GROUP, PREVIEW_PLUGIN_GROUP, PUBLISH_PLUGIN_GROUP,
    EXECUTABLE_PREVIEW_PLUGIN_GROUP, EXECUTABLE_PUBLISH_PLUGIN_GROUP,
    EXECUTABLE_DEPUBLISH_PLUGIN_GROUP, NO_XML_PREVIEW_PLUGIN_GROUP,
    EXECUTABLE_PLUGIN_TYPES, ROOT_PLUGIN_GROUP, ALL_EXCEPT_LINK_GROUP
    get_predecessor_types: Candidate predecessor kinds for a kind
    is_harvest, is_root_type: Group membership helpers
    is_data_valid: Finished plugin with VALID output
    can_display_raw_xml: Plugin output can be shown as raw XML
"""

from typing import Dict, FrozenSet

from ..models.enums import DataStatus, PluginStatus, PluginType
from ..models.plugin import NON_EXECUTABLE_PLUGIN_TYPES, Plugin


# ============================================================================
# PLUGIN GROUPS
# ============================================================================

HARVEST_PLUGIN_GROUP: FrozenSet[PluginType] = frozenset({
    PluginType.HTTP_HARVEST,
    PluginType.OAIPMH_HARVEST,
})

EXECUTABLE_PREVIEW_PLUGIN_GROUP: FrozenSet[PluginType] = frozenset({PluginType.PREVIEW})
EXECUTABLE_PUBLISH_PLUGIN_GROUP: FrozenSet[PluginType] = frozenset({PluginType.PUBLISH})
EXECUTABLE_DEPUBLISH_PLUGIN_GROUP: FrozenSet[PluginType] = frozenset({PluginType.DEPUBLISH})

# Including the non-executable reindex variants
PREVIEW_PLUGIN_GROUP: FrozenSet[PluginType] = frozenset({
    PluginType.PREVIEW,
    PluginType.REINDEX_TO_PREVIEW,
})
PUBLISH_PLUGIN_GROUP: FrozenSet[PluginType] = frozenset({
    PluginType.PUBLISH,
    PluginType.REINDEX_TO_PUBLISH,
})

# Output of these kinds is not record XML
NO_XML_PREVIEW_PLUGIN_GROUP: FrozenSet[PluginType] = frozenset({
    PluginType.LINK_CHECKING,
    PluginType.DEPUBLISH,
})

EXECUTABLE_PLUGIN_TYPES: FrozenSet[PluginType] = frozenset(
    t for t in PluginType if t not in NON_EXECUTABLE_PLUGIN_TYPES
)

# Kinds without a predecessor: lineage walks stop here
ROOT_PLUGIN_GROUP: FrozenSet[PluginType] = HARVEST_PLUGIN_GROUP | EXECUTABLE_DEPUBLISH_PLUGIN_GROUP

ALL_EXCEPT_LINK_GROUP: FrozenSet[PluginType] = EXECUTABLE_PLUGIN_TYPES - {PluginType.LINK_CHECKING}


# ============================================================================
# PREDECESSOR RULES
# ============================================================================

_PREDECESSOR_RULES: Dict[PluginType, FrozenSet[PluginType]] = {
    PluginType.HTTP_HARVEST: frozenset(),
    PluginType.OAIPMH_HARVEST: frozenset(),
    PluginType.VALIDATION_EXTERNAL: HARVEST_PLUGIN_GROUP,
    PluginType.TRANSFORMATION: frozenset({PluginType.VALIDATION_EXTERNAL}),
    PluginType.VALIDATION_INTERNAL: frozenset({PluginType.TRANSFORMATION}),
    PluginType.NORMALIZATION: frozenset({PluginType.VALIDATION_INTERNAL}),
    PluginType.ENRICHMENT: frozenset({PluginType.NORMALIZATION}),
    PluginType.MEDIA_PROCESS: frozenset({PluginType.ENRICHMENT}),
    PluginType.PREVIEW: frozenset({PluginType.MEDIA_PROCESS}),
    PluginType.PUBLISH: frozenset({PluginType.PREVIEW}),
    PluginType.LINK_CHECKING: ALL_EXCEPT_LINK_GROUP,
    PluginType.DEPUBLISH: frozenset(),
}


def get_predecessor_types(
    plugin_type: PluginType,
    link_checking_after_depublish: bool = True
) -> FrozenSet[PluginType]:
    """
    Candidate predecessor kinds for a plugin kind.

    Args:
        plugin_type: Executable plugin kind
        link_checking_after_depublish: When False, DEPUBLISH is not a
            valid predecessor of LINK_CHECKING

    Returns:
        Frozen set of kinds; empty for roots

    Raises:
        ValueError: plugin_type is not executable

    Example:
        >>> get_predecessor_types(PluginType.TRANSFORMATION)
        frozenset({<PluginType.VALIDATION_EXTERNAL: 'VALIDATION_EXTERNAL'>})
    """
    if plugin_type not in _PREDECESSOR_RULES:
        raise ValueError(f"{plugin_type.value} is not an executable plugin type")
    candidates = _PREDECESSOR_RULES[plugin_type]
    if plugin_type == PluginType.LINK_CHECKING and not link_checking_after_depublish:
        candidates = candidates - EXECUTABLE_DEPUBLISH_PLUGIN_GROUP
    return candidates


def is_harvest(plugin_type: PluginType) -> bool:
    return plugin_type in HARVEST_PLUGIN_GROUP


def is_root_type(plugin_type: PluginType) -> bool:
    return plugin_type in ROOT_PLUGIN_GROUP


# ============================================================================
# DATA RULES
# ============================================================================

def is_data_valid(plugin: Plugin) -> bool:
    """
    A finished plugin with net records whose output is still VALID.

    Non-executable plugins are never a valid predecessor.
    """
    return (
        plugin.executable
        and plugin.status == PluginStatus.FINISHED
        and plugin.data_status == DataStatus.VALID
        and plugin.progress.net_records > 0
    )


def can_display_raw_xml(plugin: Plugin) -> bool:
    """
    Whether the plugin produced record XML that can be shown.

    Requires an executable plugin with VALID data, of a kind that writes
    records, that processed more records than it failed.
    """
    return (
        plugin.executable
        and plugin.data_status == DataStatus.VALID
        and plugin.plugin_type not in NO_XML_PREVIEW_PLUGIN_GROUP
        and plugin.progress.processed_records > plugin.progress.errors
    )
