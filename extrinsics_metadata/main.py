import asyncio
import logging
from pathlib import Path
from typing import Optional

import click

from extrinsics_metadata.core.config import settings
from extrinsics_metadata.core.etl import pipeline


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    )


@click.command()
@click.option("--url", default=settings.NODE_URL, show_default=True, help="Node RPC endpoint (ws, wss, http or https)")
@click.option(
    "--metadata-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Read pre-fetched metadata (hex, JSON-RPC response or decoded JSON) instead of the node",
)
@click.option("--block-hash", default=None, help="Export the runtime active at this block")
@click.option(
    "-o",
    "--output",
    default=settings.OUTPUT_PATH,
    show_default=True,
    help="SQL file to write, '-' for stdout",
)
@click.option("--timeout", type=float, default=settings.RPC_TIMEOUT, help="RPC timeout in seconds (default: none)")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(
    url: str,
    metadata_file: Optional[Path],
    block_hash: Optional[str],
    output: str,
    timeout: Optional[float],
    verbose: bool,
) -> None:
    """Generate the SQL seed for the module, function and function_parameters tables."""
    configure_logging(verbose)

    output_path = None if output == "-" else output
    result = asyncio.run(
        pipeline.run_export_pipeline(
            node_url=url,
            output_path=output_path,
            metadata_file=metadata_file,
            block_hash=block_hash,
            timeout=timeout,
        )
    )

    if result["status"] != pipeline.PipelineStatus.COMPLETED:
        click.echo(f"Error during {result['step'].value}: {result['error']}", err=True)
        raise SystemExit(1)

    summary = result["result"]
    if output_path is None:
        click.echo(summary["sql"], nl=False)
    else:
        click.echo(
            f"Wrote {summary['modules']} modules, {summary['functions']} functions and "
            f"{summary['parameters']} parameters to {summary['output']}"
        )


if __name__ == "__main__":
    cli()
