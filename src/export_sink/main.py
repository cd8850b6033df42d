from __future__ import annotations

import sys

from export_sink.config_models import load_and_validate_config
from export_sink.core.engine import ExportRunner
from export_sink.core.errors import ExportError
from export_sink.rows import iter_jsonl_batches
from export_sink.utils.logging import setup_logging


def run_job(job_path: str) -> None:
    """Run a single export job file."""
    setup_logging("configs/logging.yaml")

    cfg = load_and_validate_config(job_path)
    projection = cfg.projection_columns()
    batches = iter_jsonl_batches(cfg.input, projection)

    report = ExportRunner().run(cfg.destination, cfg.params, batches, projection)
    print("DONE:", report)


def main() -> None:
    """Main entry point for the export sink."""
    if len(sys.argv) < 2:
        print("Usage: export-sink configs/jobs/<job>.yaml")
        raise SystemExit(2)

    job_path = sys.argv[1]
    print(f"Loading export job from {job_path}")

    try:
        run_job(job_path)
    except (ExportError, ValueError, FileNotFoundError) as e:
        print(f"Export failed: {e}", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
