# extrinsics_metadata/core/etl/ingest.py
"""
INGEST MODULE - Get the runtime metadata tree from a node or a file

Purpose:
    1. Fetch the SCALE encoded metadata from a node (state_getMetadata)
    2. Decode it into a plain tree (dicts and lists)
    3. Read pre-fetched metadata from disk instead, when asked to
    4. Turn the tree into module/function/argument descriptors
    5. Resolve argument type ids to readable type names

Data Flow:
    node/file → fetch_metadata_hex() → decode_metadata() → parse_runtime_metadata() → RuntimeMetadata
"""

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

import httpx
import websockets
from websockets.exceptions import WebSocketException
from scalecodec.base import RuntimeConfigurationObject, ScaleBytes
from scalecodec.type_registry import load_type_registry_preset

from extrinsics_metadata.core.exceptions import SourceUnavailable, TypeResolutionFailure
from extrinsics_metadata.core.schemas import (
    ArgumentDescriptor,
    FunctionDescriptor,
    ModuleDescriptor,
)

logger = logging.getLogger(__name__)

# b"meta" in hex, every encoded metadata blob starts with it
METADATA_MAGIC = "6d657461"

# Call arguments only reference the type registry from V14 on
MIN_METADATA_VERSION = 14


# ============================================================================
# STEP 1: FETCH FROM THE NODE
# ============================================================================


def build_rpc_payload(
    method: str, params: Optional[List[Any]] = None, request_id: int = 1
) -> Dict[str, Any]:
    """Build a JSON-RPC 2.0 request body."""
    return {
        "jsonrpc": "2.0",
        "method": method,
        "params": params or [],
        "id": request_id,
    }


def extract_rpc_result(body: Any, method: str) -> Any:
    """
    Pull `result` out of a JSON-RPC response.

    Raises:
        SourceUnavailable: the node answered with an error or without a result
    """
    if not isinstance(body, dict):
        raise SourceUnavailable(
            f"Unexpected {method} response format: {type(body).__name__}"
        )

    error = body.get("error")
    if error:
        message = error.get("message", error) if isinstance(error, dict) else error
        raise SourceUnavailable(f"{method} failed: {message}")

    if body.get("result") is None:
        raise SourceUnavailable(f"{method} returned no result")

    return body["result"]


async def rpc_request_http(
    url: str,
    payload: Dict[str, Any],
    timeout: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Any:
    """
    POST a JSON-RPC request to a node's HTTP endpoint.

    Args:
        url: http(s) endpoint of the node
        payload: JSON-RPC request body
        timeout: seconds to wait, None = no limit
        client: reuse an existing client (tests pass one with a mock transport)

    Returns:
        Parsed JSON response body
    """
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.post(url, json=payload)
        else:
            response = await client.post(url, json=payload)

        response.raise_for_status()
        return response.json()

    except httpx.HTTPError as e:
        raise SourceUnavailable(f"RPC request to {url} failed: {e}") from e
    except ValueError as e:
        raise SourceUnavailable(f"Node at {url} did not return JSON: {e}") from e


async def rpc_request_ws(
    url: str, payload: Dict[str, Any], timeout: Optional[float] = None
) -> Any:
    """
    Send one JSON-RPC request over a websocket and wait for the answer.

    Metadata blobs are several megabytes, so the frame size limit is lifted.
    """
    try:
        async with websockets.connect(
            url, max_size=None, open_timeout=timeout
        ) as websocket:
            await websocket.send(json.dumps(payload))
            raw = await asyncio.wait_for(websocket.recv(), timeout)
        return json.loads(raw)

    except (OSError, asyncio.TimeoutError, WebSocketException) as e:
        raise SourceUnavailable(f"RPC request to {url} failed: {e}") from e
    except ValueError as e:
        raise SourceUnavailable(f"Node at {url} did not return JSON: {e}") from e


async def fetch_metadata_hex(
    url: str,
    block_hash: Optional[str] = None,
    timeout: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """
    Fetch the encoded runtime metadata from a node.

    Supports:
        - ws:// and wss:// endpoints (websockets)
        - http:// and https:// endpoints (httpx)

    Args:
        url: Node endpoint
        block_hash: Pin the metadata to this block, default is the chain tip
        timeout: Seconds to wait, None = no limit
        client: Optional httpx client for http endpoints

    Returns:
        Hex string "0x6d657461..."
    """
    params = [block_hash] if block_hash else []
    payload = build_rpc_payload("state_getMetadata", params)

    at_block = f" at block {block_hash}" if block_hash else ""
    logger.info(f"Fetching runtime metadata from {url}{at_block}")

    if url.startswith(("ws://", "wss://")):
        body = await rpc_request_ws(url, payload, timeout)
    elif url.startswith(("http://", "https://")):
        body = await rpc_request_http(url, payload, timeout, client)
    else:
        raise SourceUnavailable(f"Unsupported node URL: {url}")

    result = extract_rpc_result(body, "state_getMetadata")
    if not isinstance(result, str):
        raise SourceUnavailable(
            f"state_getMetadata returned {type(result).__name__}, expected a hex string"
        )

    logger.info(f"Fetched {max(len(result) - 2, 0) // 2} bytes of metadata")
    return result


# ============================================================================
# STEP 2: DECODE (OR READ FROM DISK)
# ============================================================================


def decode_metadata(metadata_hex: str) -> Any:
    """
    Decode SCALE encoded metadata into a plain tree.

    Returns:
        The decoded `MetadataVersioned` value, e.g. [magic, {"V14": {...}}]
    """
    data = metadata_hex.strip().lower()
    if not data.startswith("0x"):
        data = f"0x{data}"

    if data[2:10] != METADATA_MAGIC:
        raise SourceUnavailable("Metadata does not start with the 'meta' magic number")

    runtime_config = RuntimeConfigurationObject()
    runtime_config.update_type_registry(load_type_registry_preset("core"))

    try:
        decoder = runtime_config.create_scale_object(
            "MetadataVersioned", data=ScaleBytes(data)
        )
        decoder.decode()
    except Exception as e:
        raise SourceUnavailable(f"Could not decode runtime metadata: {e}") from e

    return decoder.value


def load_metadata_file(path: Union[str, Path]) -> Any:
    """
    Read pre-fetched metadata from disk.

    Handles:
        - raw hex dump "0x6d657461..."
        - saved JSON-RPC response {"jsonrpc": "2.0", "result": "0x6d65..."}
        - JSON string holding the hex
        - already decoded JSON tree {"V14": {...}}
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8").strip()
    except OSError as e:
        raise SourceUnavailable(f"Cannot read metadata file {path}: {e}") from e

    if content.startswith("0x"):
        return decode_metadata(content)

    try:
        data = json.loads(content)
    except ValueError as e:
        raise SourceUnavailable(f"Metadata file {path} is neither hex nor JSON") from e

    if isinstance(data, dict) and isinstance(data.get("result"), str):
        return decode_metadata(data["result"])
    if isinstance(data, str):
        return decode_metadata(data)

    return data


# ============================================================================
# STEP 3: TYPE REGISTRY LOOKUP
# ============================================================================


def _definition_kind(definition: Dict[str, Any]) -> Tuple[str, Any]:
    # {"variant": {...}}, {"bitSequence": {...}}, {"Primitive": "U32"}...
    if not isinstance(definition, dict) or len(definition) != 1:
        return "", None
    key, body = next(iter(definition.items()))
    return key.lower().replace("_", ""), body


class TypeRegistry:
    """
    Portable type registry of a V14+ runtime.

    Maps type ids to display names like `Compact<u128>`, `Vec<AccountId32>`
    or `MultiAddress<AccountId32, ()>`.
    """

    def __init__(self, types: List[Dict[str, Any]]):
        self._types: Dict[int, Dict[str, Any]] = {}
        for entry in types:
            self._types[int(entry["id"])] = entry.get("type", entry)
        self._names: Dict[int, str] = {}

    @classmethod
    def from_metadata(cls, metadata: Dict[str, Any]) -> "TypeRegistry":
        registry = metadata.get("lookup") or metadata.get("types") or {}
        types = registry.get("types", []) if isinstance(registry, dict) else registry
        return cls(types)

    def __contains__(self, type_id: Any) -> bool:
        try:
            return int(type_id) in self._types
        except (TypeError, ValueError):
            return False

    def __len__(self) -> int:
        return len(self._types)

    def get(self, type_id: Any) -> Dict[str, Any]:
        if type_id not in self:
            raise TypeResolutionFailure(type_id)
        return self._types[int(type_id)]

    def type_name(self, type_id: Any) -> str:
        """Resolve a type id to its display name."""
        if type_id not in self:
            raise TypeResolutionFailure(type_id)

        type_id = int(type_id)
        if type_id not in self._names:
            self._names[type_id] = self._render(type_id, frozenset())
        return self._names[type_id]

    def _render(self, type_id: int, visiting: FrozenSet[int]) -> str:
        entry = self.get(type_id)
        path = [str(segment) for segment in entry.get("path") or []]

        # Recursive types (e.g. a call enum holding boxed calls)
        if type_id in visiting:
            return path[-1] if path else f"Type{type_id}"
        visiting = visiting | {type_id}

        kind, body = _definition_kind(entry.get("def") or {})

        if kind == "primitive":
            return str(body).lower()

        if kind == "compact":
            return f"Compact<{self._render(body['type'], visiting)}>"

        if kind == "sequence":
            inner = self._render(body["type"], visiting)
            return "Bytes" if inner == "u8" else f"Vec<{inner}>"

        if kind == "array":
            return f"[{self._render(body['type'], visiting)}; {body['len']}]"

        if kind == "tuple":
            members = body.get("fields", []) if isinstance(body, dict) else body
            return "(" + ", ".join(self._render(m, visiting) for m in members) + ")"

        if kind == "bitsequence":
            return "BitVec"

        if kind in ("composite", "variant"):
            if path:
                params = [
                    p["type"]
                    for p in entry.get("params") or []
                    if p.get("type") is not None
                ]
                if not params:
                    return path[-1]
                rendered = ", ".join(self._render(p, visiting) for p in params)
                return f"{path[-1]}<{rendered}>"

            if kind == "composite":
                fields = (body or {}).get("fields") or []
                if len(fields) == 1:
                    return self._render(fields[0]["type"], visiting)
                return "(" + ", ".join(self._render(f["type"], visiting) for f in fields) + ")"

            return f"Type{type_id}"

        raise TypeResolutionFailure(type_id, f"unsupported type definition {kind!r}")


# ============================================================================
# STEP 4: PARSE INTO DESCRIPTORS
# ============================================================================


class RuntimeMetadata:
    """
    Parsed metadata of one runtime version.

    This is the read-only source the normalizer walks: an ordered module
    list plus a way to name argument types.
    """

    def __init__(
        self, version: int, modules: List[ModuleDescriptor], registry: TypeRegistry
    ):
        self.version = version
        self.modules = modules
        self.registry = registry

    def resolve_type_name(self, type_handle: int) -> str:
        return self.registry.type_name(type_handle)


def unwrap_versioned(tree: Any) -> Tuple[int, Dict[str, Any]]:
    """
    Strip the version envelope.

    Accepts:
        [magic, {"V14": {...}}]                         (scalecodec)
        {"V14": {...}}                                  (subxt / json dumps)
        {"magicNumber": ..., "metadata": {"v14": ...}}  (polkadot.js toJSON)
    """
    node = tree
    if isinstance(node, (list, tuple)):
        if not node:
            raise SourceUnavailable("Metadata tree is empty")
        node = node[-1]

    if isinstance(node, dict) and isinstance(node.get("metadata"), dict):
        node = node["metadata"]

    if not isinstance(node, dict):
        raise SourceUnavailable(f"Unexpected metadata format: {type(node).__name__}")

    versions = [key for key in node if re.fullmatch(r"[Vv]\d+", str(key))]
    if len(versions) != 1:
        raise SourceUnavailable("Cannot find the metadata version in the tree")

    key = versions[0]
    version = int(key[1:])
    if version < MIN_METADATA_VERSION:
        raise SourceUnavailable(
            f"Metadata V{version} is not supported, need V{MIN_METADATA_VERSION} or newer"
        )

    return version, node[key]


def parse_call_variants(
    calls_type: Any, registry: TypeRegistry, pallet_name: str
) -> List[FunctionDescriptor]:
    """Expand a pallet's call enum into function descriptors, in declared order."""
    if calls_type not in registry:
        raise SourceUnavailable(
            f"Call type {calls_type!r} of {pallet_name} is missing from the type registry"
        )

    kind, body = _definition_kind(registry.get(calls_type).get("def") or {})
    if kind != "variant":
        raise SourceUnavailable(f"Call type of {pallet_name} is not an enum")

    functions = []
    for variant in body.get("variants") or []:
        args = [
            ArgumentDescriptor(name=field.get("name") or None, type_handle=field["type"])
            for field in variant.get("fields") or []
        ]
        functions.append(
            FunctionDescriptor(
                name=str(variant["name"]),
                docs=[str(line) for line in variant.get("docs") or []],
                real_index=variant["index"],
                args=args,
            )
        )
    return functions


def parse_pallet(pallet: Dict[str, Any], registry: TypeRegistry) -> ModuleDescriptor:
    name = str(pallet["name"])

    functions = None
    calls = pallet.get("calls")
    if calls is not None:
        calls_type = calls.get("ty", calls.get("type")) if isinstance(calls, dict) else calls
        functions = parse_call_variants(calls_type, registry, name)

    return ModuleDescriptor(
        name=name,
        # V14 pallets carry no docs, V15 ones do
        docs=[str(line) for line in pallet.get("docs") or []],
        index=pallet.get("index"),
        functions=functions,
    )


def parse_runtime_metadata(tree: Any) -> RuntimeMetadata:
    """
    Build the RuntimeMetadata source from a decoded metadata tree.

    Raises:
        SourceUnavailable: unsupported version or malformed tree
    """
    version, metadata = unwrap_versioned(tree)

    pallets = metadata.get("pallets")
    if pallets is None:
        raise SourceUnavailable(f"Metadata V{version} has no pallet list")

    try:
        registry = TypeRegistry.from_metadata(metadata)
        modules = [parse_pallet(pallet, registry) for pallet in pallets]
    except (KeyError, TypeError, ValueError) as e:
        raise SourceUnavailable(f"Malformed metadata V{version}: {e}") from e

    return RuntimeMetadata(version, modules, registry)


# ============================================================================
# MAIN FUNCTION - The one you'll actually use
# ============================================================================


async def get_runtime_metadata(
    node_url: Optional[str] = None,
    metadata_file: Optional[Union[str, Path]] = None,
    block_hash: Optional[str] = None,
    timeout: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> RuntimeMetadata:
    """
    Complete ingest: read the file if one is given, otherwise ask the node.

    Example:
        runtime = await get_runtime_metadata(node_url="wss://gdev.coinduf.eu")
        for module in runtime.modules:
            ...
    """
    if metadata_file is not None:
        logger.info(f"Reading metadata from {metadata_file}")
        tree = load_metadata_file(metadata_file)
    elif node_url:
        metadata_hex = await fetch_metadata_hex(node_url, block_hash, timeout, client)
        tree = decode_metadata(metadata_hex)
    else:
        raise SourceUnavailable("Either a node URL or a metadata file is required")

    runtime = parse_runtime_metadata(tree)
    logger.info(f"Found {len(runtime.modules)} pallets in metadata V{runtime.version}")
    return runtime
