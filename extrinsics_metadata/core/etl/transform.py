# extrinsics_metadata/core/etl/transform.py
"""
TRANSFORM MODULE - Normalize the metadata tree into three flat record sets

Purpose:
    1. Give every module its id (the pallet index, System pinned to 0)
    2. Number every function and every parameter across the whole runtime
    3. Fill in descriptions that the runtime left empty
    4. Resolve argument types to readable names

Data Flow:
    RuntimeMetadata (from ingest.py) → normalize_metadata() → NormalizedMetadata
                                                                    ↓
                                                    load.py renders it as SQL

Id rules (the downstream database relies on them):
    module.id              System → 0, else reported index, else position
    function.id            0, 1, 2... over ALL modules, in traversal order
    function.call_index    the real on-chain index, never renumbered
    function_parameters.id 0, 1, 2... over ALL functions, in traversal order
"""

import logging
from typing import List, Protocol

from extrinsics_metadata.core.exceptions import MetadataExportError, TypeResolutionFailure
from extrinsics_metadata.core.schemas import (
    ArgumentDescriptor,
    FunctionDescriptor,
    FunctionRecord,
    ModuleDescriptor,
    ModuleRecord,
    NormalizedMetadata,
    ParameterRecord,
)

logger = logging.getLogger(__name__)

SYSTEM_MODULE = "System"


class MetadataSource(Protocol):
    """What the normalizer needs from the metadata side (see ingest.RuntimeMetadata)."""

    modules: List[ModuleDescriptor]

    def resolve_type_name(self, type_handle: int) -> str: ...


# ============================================================================
# STEP 1: IDS AND DESCRIPTIONS
# ============================================================================


def module_id_for(module: ModuleDescriptor, position: int) -> int:
    """
    Pick the id of a module.

    System is always 0, whatever index it reports. An explicit index of 0 on
    any other module counts as "missing" and falls back to the position.
    Existing databases were seeded with this rule, keep it.

    Examples:
        System, index 5, position 3   → 0
        Balances, index 6             → 6
        Balances, index 0, position 1 → 1
        Balances, no index, pos. 4    → 4
    """
    if module.name == SYSTEM_MODULE:
        return 0
    return module.index or position


def describe_module(module: ModuleDescriptor) -> str:
    if module.docs:
        return " ".join(module.docs)
    return f"No description available for {module.name} module."


def describe_function(function: FunctionDescriptor, module_name: str) -> str:
    if function.docs:
        return " ".join(function.docs)
    return f"No description available for {function.name} in {module_name}."


def parameter_name(argument: ArgumentDescriptor, position: int) -> str:
    """Declared name, or arg0, arg1... for positional arguments."""
    if argument.name is not None:
        return argument.name
    return f"arg{position}"


# ============================================================================
# STEP 2: TRAVERSAL
# ============================================================================


class TraversalState:
    """Counters and record lists for one normalization run."""

    def __init__(self):
        self.function_counter = 0
        self.parameter_counter = 0
        self.modules: List[ModuleRecord] = []
        self.functions: List[FunctionRecord] = []
        self.parameters: List[ParameterRecord] = []

    def next_function_id(self) -> int:
        function_id = self.function_counter
        self.function_counter += 1
        return function_id

    def next_parameter_id(self) -> int:
        parameter_id = self.parameter_counter
        self.parameter_counter += 1
        return parameter_id

    def result(self) -> NormalizedMetadata:
        return NormalizedMetadata(
            modules=self.modules,
            functions=self.functions,
            parameters=self.parameters,
        )


def resolve_type(source: MetadataSource, type_handle: int) -> str:
    try:
        return source.resolve_type_name(type_handle)
    except MetadataExportError:
        raise
    except Exception as e:
        raise TypeResolutionFailure(type_handle, str(e)) from e


def normalize_function(
    source: MetadataSource,
    state: TraversalState,
    function: FunctionDescriptor,
    module_id: int,
    module_name: str,
) -> FunctionRecord:
    record = FunctionRecord(
        id=state.next_function_id(),
        module_id=module_id,
        call_index=function.real_index,
        name=function.name,
        description=describe_function(function, module_name),
    )
    state.functions.append(record)

    logger.debug(
        f"  - {record.name} (ID: {record.call_index} / Hex: 0x{record.call_index:x})"
    )

    for position, argument in enumerate(function.args):
        state.parameters.append(
            ParameterRecord(
                id=state.next_parameter_id(),
                function_id=record.id,
                name=parameter_name(argument, position),
                type=resolve_type(source, argument.type_handle),
            )
        )

    return record


def normalize_module(
    source: MetadataSource,
    state: TraversalState,
    module: ModuleDescriptor,
    position: int,
) -> ModuleRecord:
    record = ModuleRecord(
        id=module_id_for(module, position),
        name=module.name,
        description=describe_module(module),
    )
    state.modules.append(record)

    logger.debug(f"Module: {record.name} (ID: {record.id})")

    # No call list: the module row is all this pallet contributes
    if module.functions is None:
        return record

    for function in module.functions:
        normalize_function(source, state, function, record.id, record.name)

    return record


# ============================================================================
# MAIN FUNCTION
# ============================================================================


def normalize_metadata(source: MetadataSource) -> NormalizedMetadata:
    """
    Walk every module, function and argument once and build the record sets.

    Args:
        source: Parsed runtime metadata (anything with `modules` and
            `resolve_type_name`)

    Returns:
        NormalizedMetadata with modules, functions and parameters in
        traversal order

    Raises:
        TypeResolutionFailure: an argument type could not be named. Nothing
            is returned in that case, the run has to stop.

    Example:
        runtime = await ingest.get_runtime_metadata(node_url=url)
        normalized = normalize_metadata(runtime)
        print(len(normalized.functions))
    """
    state = TraversalState()

    for position, module in enumerate(source.modules):
        normalize_module(source, state, module, position)

    normalized = state.result()
    logger.info(
        f"Normalized {len(normalized.modules)} modules, "
        f"{len(normalized.functions)} functions, "
        f"{len(normalized.parameters)} parameters"
    )
    return normalized
