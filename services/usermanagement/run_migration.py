import argparse
import json

from services.usermanagement.config import configure_logging, load_config
from services.usermanagement.worker import (
    enqueue_bulk_migration,
    run_bulk_migration,
    run_worker,
)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Copy user records from the record store into the warehouse."
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--enqueue", action="store_true", help="queue the migration for a worker"
    )
    mode.add_argument(
        "--worker", action="store_true", help="run a worker for queued migrations"
    )
    args = parser.parse_args(argv)

    if args.worker:
        run_worker()
        return

    cfg = load_config()
    configure_logging(cfg.log_level)
    if args.enqueue:
        job = enqueue_bulk_migration(cfg)
        print(json.dumps({"job_id": job.id}))
        return

    print(json.dumps(run_bulk_migration()))


if __name__ == "__main__":
    main()
