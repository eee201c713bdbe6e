import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import StaticMetadataSource, execute_script
from extrinsics_metadata.core import models
from extrinsics_metadata.core.etl import load, transform
from extrinsics_metadata.core.exceptions import SinkFailure
from extrinsics_metadata.core.schemas import (
    FunctionRecord,
    ModuleDescriptor,
    ModuleRecord,
    NormalizedMetadata,
)


def test_escape_doubles_single_quotes():
    assert load.escape_sql_string("won't") == "won''t"
    assert load.escape_sql_string("''") == "''''"
    assert load.escape_sql_string('say "hi"; \\n') == 'say "hi"; \\n'


def test_render_value():
    assert load.render_value(42) == "42"
    assert load.render_value("Can't") == "'Can''t'"

    with pytest.raises(TypeError):
        load.render_value(1.5)


def test_render_insert_shape():
    records = [
        ModuleRecord(id=0, name="System", description="Core."),
        ModuleRecord(id=6, name="Balances", description="It's money."),
    ]
    sql = load.render_insert(models.Module.__table__, records)

    assert sql == (
        "-- Populate the module table with explicit IDs\n"
        "INSERT INTO module (id, name, description) VALUES\n"
        "  (0, 'System', 'Core.'),\n"
        "  (6, 'Balances', 'It''s money.');\n"
    )


def test_render_insert_function_column_order():
    records = [FunctionRecord(id=0, module_id=6, call_index=3, name="transfer", description="Move funds.")]
    sql = load.render_insert(models.Function.__table__, records)

    assert "INSERT INTO function (id, module_id, call_index, name, description) VALUES\n" in sql
    assert "  (0, 6, 3, 'transfer', 'Move funds.');\n" in sql


def test_empty_record_set_emits_no_insert():
    sql = load.render_insert(models.FunctionParameter.__table__, [])

    assert "INSERT" not in sql
    assert sql == "-- No rows to populate the function_parameters table\n"


def test_document_order_and_separation(runtime):
    sql = load.render_sql_document(transform.normalize_metadata(runtime))

    module_at = sql.index("INSERT INTO module ")
    function_at = sql.index("INSERT INTO function ")
    parameters_at = sql.index("INSERT INTO function_parameters ")
    assert module_at < function_at < parameters_at

    assert sql.count(";\n\n-- Populate") == 2
    assert sql.endswith(";\n")
    assert ",\n;" not in sql


def test_no_unescaped_quote_remains(runtime):
    sql = load.render_sql_document(transform.normalize_metadata(runtime))

    assert "won''t kill the origin account." in sql
    assert "won't" not in sql


def test_document_is_deterministic(runtime):
    first = load.render_sql_document(transform.normalize_metadata(runtime))
    second = load.render_sql_document(transform.normalize_metadata(runtime))

    assert first == second


def test_document_loads_into_schema(runtime, sqlite_engine):
    """Generated SQL runs against the declared tables, quotes survive"""
    execute_script(sqlite_engine, load.render_sql_document(transform.normalize_metadata(runtime)))

    with Session(sqlite_engine) as session:
        modules = session.scalars(select(models.Module).order_by(models.Module.id)).all()
        functions = session.scalars(select(models.Function).order_by(models.Function.id)).all()
        parameters = session.scalars(
            select(models.FunctionParameter).order_by(models.FunctionParameter.id)
        ).all()

        assert [m.name for m in modules] == ["System", "Timestamp", "Balances", "Sudo"]
        assert len(functions) == 6
        assert len(parameters) == 11

        keep_alive = functions[4]
        assert keep_alive.module.name == "Balances"
        assert keep_alive.call_index == 3
        assert keep_alive.description == "Same as the transfer call, but won't kill the origin account."
        assert [p.name for p in keep_alive.parameters] == ["arg0", "value"]


def test_system_only_document_loads(sqlite_engine):
    source = StaticMetadataSource([ModuleDescriptor(name="System", index=5, functions=[])], {})
    sql = load.render_sql_document(transform.normalize_metadata(source))

    assert "INSERT INTO module (id, name, description) VALUES\n" in sql
    assert "  (0, 'System', 'No description available for System module.');\n" in sql
    execute_script(sqlite_engine, sql)

    with Session(sqlite_engine) as session:
        assert session.scalars(select(models.Function)).all() == []


def test_write_sql_file_creates_parents(tmp_path):
    target = tmp_path / "db" / "migration" / "V2__seed.sql"
    written = load.write_sql_file(target, "SELECT 1;\n")

    assert written == target.resolve()
    assert target.read_text(encoding="utf-8") == "SELECT 1;\n"


def test_write_sql_file_failure(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")

    with pytest.raises(SinkFailure):
        load.write_sql_file(blocker / "seed.sql", "SELECT 1;\n")


def test_render_empty_metadata():
    sql = load.render_sql_document(NormalizedMetadata())

    assert "INSERT" not in sql
    assert sql.count("-- No rows to populate") == 3
