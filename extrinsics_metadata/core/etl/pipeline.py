import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from extrinsics_metadata.core.etl import ingest, load, transform
from extrinsics_metadata.core.exceptions import MetadataExportError


# -----------------------------------------------------------------------------
# PIPELINE MODULE - Orchestration
# Purpose: run ingest → transform → load strictly in that order, stop at the
# first failure, and keep a step-by-step log of the run
# Why: one entry point for the CLI and for tests
# -----------------------------------------------------------------------------


class PipelineStatus(Enum):
    """Outcome of a finished export run."""

    COMPLETED = "completed"
    FAILED = "failed"


class PipelineStep(Enum):
    """Individual pipeline steps."""

    INGEST = "ingest"
    TRANSFORM = "transform"
    LOAD = "load"


logger = logging.getLogger(__name__)


class PipelineLogger:
    """Collects the log lines of one export run."""

    def __init__(self, source: str):
        """
        Args:
            source: Node URL or metadata file the run reads from.
        """
        self.source = source
        self.start_time = datetime.now()
        self.logs = []

    def log(self, step: PipelineStep, message: str, level: str = "info"):
        timestamp = datetime.now().isoformat()
        log_entry = {
            "timestamp": timestamp,
            "step": step.value,
            "message": message,
            "level": level,
            "elapsed_seconds": (datetime.now() - self.start_time).total_seconds(),
        }
        self.logs.append(log_entry)

        # Also log to console
        if level == "error":
            logger.error(f"[{self.source}] {step.value}: {message}")
        elif level == "warning":
            logger.warning(f"[{self.source}] {step.value}: {message}")
        else:
            logger.info(f"[{self.source}] {step.value}: {message}")

    def get_logs(self) -> List[Dict[str, Any]]:
        return self.logs

    def get_summary(self) -> Dict[str, Any]:
        end_time = datetime.now()
        duration = (end_time - self.start_time).total_seconds()

        return {
            "source": self.source,
            "start_time": self.start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "duration_seconds": duration,
            "total_logs": len(self.logs),
            "logs": self.logs,
        }


def render_only(source: transform.MetadataSource) -> str:
    """Normalize a metadata source and return the SQL text, without writing it."""
    return load.render_sql_document(transform.normalize_metadata(source))


async def run_export_pipeline(
    node_url: Optional[str] = None,
    output_path: Optional[Union[str, Path]] = None,
    metadata_file: Optional[Union[str, Path]] = None,
    block_hash: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Run the complete export: metadata → records → SQL → file.

    Nothing is written unless every record set was built and rendered.

    Args:
        node_url: Node to fetch metadata from (ignored when metadata_file is set)
        output_path: Where to write the SQL, None = return the text only
        metadata_file: Pre-fetched metadata to read instead of the node
        block_hash: Fetch the metadata of this block instead of the tip
        timeout: RPC timeout in seconds, None = no limit

    Returns:
        {"status", "result", "logs"} on success,
        {"status", "step", "error", "logs"} on failure

    Example:
        result = await run_export_pipeline(
            node_url="wss://gdev.coinduf.eu",
            output_path="V2__populate_modules_and_functions.sql",
        )
    """
    source_label = str(metadata_file) if metadata_file is not None else str(node_url)
    pipeline_logger = PipelineLogger(source_label)
    step = PipelineStep.INGEST

    try:
        pipeline_logger.log(step, "Reading runtime metadata...")
        runtime = await ingest.get_runtime_metadata(
            node_url=node_url,
            metadata_file=metadata_file,
            block_hash=block_hash,
            timeout=timeout,
        )
        pipeline_logger.log(
            step, f"Metadata V{runtime.version}: {len(runtime.modules)} pallets"
        )

        step = PipelineStep.TRANSFORM
        pipeline_logger.log(step, "Generating records for modules and extrinsics...")
        normalized = transform.normalize_metadata(runtime)
        pipeline_logger.log(
            step,
            f"{len(normalized.modules)} modules, {len(normalized.functions)} functions, "
            f"{len(normalized.parameters)} parameters",
        )
        if not normalized.functions:
            pipeline_logger.log(step, "Runtime declares no callable functions", "warning")

        step = PipelineStep.LOAD
        sql = load.render_sql_document(normalized)
        result = {
            "modules": len(normalized.modules),
            "functions": len(normalized.functions),
            "parameters": len(normalized.parameters),
            "output": None,
        }

        if output_path is None:
            result["sql"] = sql
            pipeline_logger.log(step, "SQL rendered, no output file requested")
        else:
            written = load.write_sql_file(output_path, sql)
            result["output"] = str(written)
            pipeline_logger.log(step, f"SQL written to {written}")

        return {
            "status": PipelineStatus.COMPLETED,
            "result": result,
            "logs": pipeline_logger.get_logs(),
        }

    except MetadataExportError as e:
        pipeline_logger.log(step, f"{type(e).__name__}: {e}", "error")
        return {
            "status": PipelineStatus.FAILED,
            "step": step,
            "error": str(e),
            "error_type": type(e).__name__,
            "logs": pipeline_logger.get_logs(),
        }
