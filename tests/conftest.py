import json

import pytest
from scalecodec.base import RuntimeConfigurationObject
from scalecodec.type_registry import load_type_registry_preset
from sqlalchemy import create_engine

from extrinsics_metadata.core import models
from extrinsics_metadata.core.etl import ingest


def field(name, type_id, type_name=None):
    return {"name": name, "type": type_id, "typeName": type_name, "docs": []}


def variant(name, index, fields=(), docs=()):
    return {"name": name, "fields": list(fields), "index": index, "docs": list(docs)}


def pallet(name, index, calls_type=None):
    calls = {"ty": calls_type} if calls_type is not None else None
    return {"name": name, "storage": None, "calls": calls, "event": None, "constants": [], "error": None, "index": index}


# Small V14 runtime with the key names scalecodec uses for a decoded state_getMetadata answer
def build_metadata_tree():
    types = [
        {"id": 0, "type": {"path": [], "params": [], "def": {"primitive": "u8"}, "docs": []}},
        {"id": 1, "type": {"path": [], "params": [], "def": {"sequence": {"type": 0}}, "docs": []}},
        {
            "id": 2,
            "type": {
                "path": ["sp_core", "crypto", "AccountId32"],
                "params": [],
                "def": {"composite": {"fields": [field(None, 3, "[u8; 32]")]}},
                "docs": [],
            },
        },
        {"id": 3, "type": {"path": [], "params": [], "def": {"array": {"len": 32, "type": 0}}, "docs": []}},
        {"id": 4, "type": {"path": [], "params": [], "def": {"primitive": "u128"}, "docs": []}},
        {"id": 5, "type": {"path": [], "params": [], "def": {"compact": {"type": 4}}, "docs": []}},
        {
            "id": 6,
            "type": {
                "path": ["sp_runtime", "multiaddress", "MultiAddress"],
                "params": [{"name": "AccountId", "type": 2}, {"name": "AccountIndex", "type": 7}],
                "def": {"variant": {"variants": [variant("Id", 0, [field(None, 2)])]}},
                "docs": [],
            },
        },
        {"id": 7, "type": {"path": [], "params": [], "def": {"tuple": []}, "docs": []}},
        {
            "id": 8,
            "type": {
                "path": ["frame_system", "pallet", "Call"],
                "params": [{"name": "T", "type": None}],
                "def": {
                    "variant": {
                        "variants": [
                            variant(
                                "remark", 0, [field("remark", 1, "Vec<u8>")], ["Make some on-chain remark."]
                            ),
                            variant(
                                "kill_prefix",
                                6,
                                [field("prefix", 1, "Key"), field("subkeys", 9, "u32")],
                                ["Kill all storage items with a key that starts with", "the given prefix."],
                            ),
                        ]
                    }
                },
                "docs": [],
            },
        },
        {"id": 9, "type": {"path": [], "params": [], "def": {"primitive": "u32"}, "docs": []}},
        {
            "id": 10,
            "type": {
                "path": ["pallet_balances", "pallet", "Call"],
                "params": [{"name": "T", "type": None}, {"name": "I", "type": None}],
                "def": {
                    "variant": {
                        "variants": [
                            variant(
                                "transfer_allow_death",
                                0,
                                [field("dest", 6, "AccountIdLookupOf<T>"), field("value", 5, "T::Balance")],
                                ["Transfer some liquid free balance", "to another account."],
                            ),
                            variant("force_transfer", 2, [field("source", 6), field("dest", 6), field("value", 5)]),
                            variant(
                                "transfer_keep_alive",
                                3,
                                [field(None, 6), field("value", 5)],
                                ["Same as the transfer call, but won't kill the origin account."],
                            ),
                        ]
                    }
                },
                "docs": [],
            },
        },
        {
            "id": 11,
            "type": {
                "path": ["pallet_sudo", "pallet", "Call"],
                "params": [{"name": "T", "type": None}],
                "def": {
                    "variant": {
                        "variants": [
                            variant(
                                "sudo",
                                0,
                                [field("call", 12, "Box<RuntimeCall>")],
                                ["Authenticates the sudo key and dispatches a function call."],
                            )
                        ]
                    }
                },
                "docs": [],
            },
        },
        {
            "id": 12,
            "type": {
                "path": ["gdev_runtime", "RuntimeCall"],
                "params": [],
                "def": {"variant": {"variants": [variant("System", 0, [field(None, 8)]), variant("Sudo", 23, [field(None, 11)])]}},
                "docs": [],
            },
        },
    ]

    pallets = [
        pallet("System", 0, calls_type=8),
        pallet("Timestamp", 1),
        pallet("Balances", 6, calls_type=10),
        pallet("Sudo", 23, calls_type=11),
    ]

    return {
        "V14": {
            "types": {"types": types},
            "pallets": pallets,
            "extrinsic": {"ty": 12, "version": 4, "signed_extensions": []},
            "runtime_type": 12,
        }
    }


def encode_metadata(tree):
    """SCALE encode a {"V14": {...}} tree the way a node returns it: "meta" magic, version byte, body."""
    runtime_config = RuntimeConfigurationObject()
    runtime_config.update_type_registry(load_type_registry_preset("core"))

    body = runtime_config.create_scale_object("MetadataV14").encode(tree["V14"])
    return "0x" + ingest.METADATA_MAGIC + "0e" + body.data.hex()


class StaticMetadataSource:
    """Hand-built source: descriptors plus a handle → name table."""

    def __init__(self, modules, type_names):
        self.modules = modules
        self.type_names = type_names

    def resolve_type_name(self, type_handle):
        return self.type_names[type_handle]


def execute_script(engine, sql):
    """Run a multi-statement SQL document against a SQLite engine."""
    raw = engine.raw_connection()
    try:
        raw.driver_connection.executescript("PRAGMA foreign_keys = ON;\n" + sql)
    finally:
        raw.close()


@pytest.fixture
def metadata_tree():
    return build_metadata_tree()


@pytest.fixture
def runtime(metadata_tree):
    return ingest.parse_runtime_metadata(metadata_tree)


@pytest.fixture
def metadata_file(tmp_path, metadata_tree):
    path = tmp_path / "runtime.metadata.json"
    path.write_text(json.dumps(metadata_tree), encoding="utf-8")
    return path


# Create the downstream schema in an in-memory db for every test that needs it
@pytest.fixture
def sqlite_engine():
    engine = create_engine("sqlite://")
    models.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def metadata_hex(metadata_tree):
    return encode_metadata(metadata_tree)
