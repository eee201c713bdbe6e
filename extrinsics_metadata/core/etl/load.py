import logging
from pathlib import Path
from typing import Any, List, Sequence, Union

from pydantic import BaseModel
from sqlalchemy import Table

from extrinsics_metadata.core import models
from extrinsics_metadata.core.exceptions import SinkFailure
from extrinsics_metadata.core.schemas import NormalizedMetadata

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# LOAD MODULE
# Purpose: render the normalized record sets as one SQL seed file.
# Why: the downstream database is populated from a static migration file, so
# the output has to be deterministic and safe to replay as-is.
# -----------------------------------------------------------------------------


def escape_sql_string(value: str) -> str:
    """
    Escape a value for a single-quoted SQL literal.

    Doubling the quote is the only escaping applied.

    Example:
        escape_sql_string("Can't") == "Can''t"
    """
    return value.replace("'", "''")


def render_value(value: Any) -> str:
    """
    Render one column value as a SQL literal.

    Ints come out as plain decimals, strings quoted and escaped.
    """
    if isinstance(value, bool):
        raise TypeError("Boolean columns are not part of the seed schema")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return f"'{escape_sql_string(value)}'"
    raise TypeError(f"Cannot render {type(value).__name__} as a SQL literal")


def render_row(columns: Sequence[str], record: BaseModel) -> str:
    values = ", ".join(render_value(getattr(record, column)) for column in columns)
    return f"  ({values})"


def render_insert(table: Table, records: List[BaseModel]) -> str:
    """
    Render one multi-row INSERT for a table.

    Args:
        table: SQLAlchemy table, its column order is the statement's column order
        records: Records whose field names match the table's columns

    Returns:
        Statement text ending with ";\\n". An empty record set only gets a
        comment, never an INSERT without rows.

    Example:
        -- Populate the module table with explicit IDs
        INSERT INTO module (id, name, description) VALUES
          (0, 'System', 'No description available for System module.'),
          (6, 'Balances', 'The Balances pallet');
    """
    if not records:
        logger.warning(f"No rows for table {table.name}, skipping its INSERT")
        return f"-- No rows to populate the {table.name} table\n"

    columns = [column.name for column in table.columns]
    rows = ",\n".join(render_row(columns, record) for record in records)

    return (
        f"-- Populate the {table.name} table with explicit IDs\n"
        f"INSERT INTO {table.name} ({', '.join(columns)}) VALUES\n"
        f"{rows};\n"
    )


def render_sql_document(normalized: NormalizedMetadata) -> str:
    """
    Render the module, function and function_parameters statements,
    in that order, separated by a blank line.

    The same NormalizedMetadata always gives byte-identical text.
    """
    statements = [
        render_insert(models.Module.__table__, normalized.modules),
        render_insert(models.Function.__table__, normalized.functions),
        render_insert(models.FunctionParameter.__table__, normalized.parameters),
    ]
    return "\n".join(statements)


def write_sql_file(path: Union[str, Path], sql: str) -> Path:
    """
    Write the SQL document to disk in one go.

    Parent directories are created when missing.

    Returns:
        Absolute path of the written file.
    """
    output = Path(path).resolve()
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(sql, encoding="utf-8")
    except OSError as e:
        raise SinkFailure(f"Cannot write SQL file {output}: {e}") from e

    logger.info(f"SQL file generated: {output}")
    return output
