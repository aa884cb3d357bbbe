from __future__ import annotations

import argparse
import csv
import json
import logging
from pathlib import Path

from ingest.adapters.shopify import ShopifyStorefrontAdapter
from ingest.bootstrap import ENRICHMENT_MODES, build_orchestrator, build_reconciliation_engine
from ingest.config import get_settings
from ingest.db import SessionLocal, engine
from ingest.errors import BudgetExceeded, InputError
from ingest.models import Base
from ingest.pipeline import ImportOptions

logger = logging.getLogger(__name__)


def read_inputs(path: Path) -> list[str | dict[str, object]]:
    """Load raw inputs from a text (one per line), CSV (header row) or JSON (list) file."""
    suffix = path.suffix.lower()
    if suffix == ".json":
        payload = json.loads(path.read_text())
        if not isinstance(payload, list):
            raise ValueError(f"{path} must contain a JSON list")
        return payload
    if suffix == ".csv":
        with path.open(newline="") as handle:
            return [dict(row) for row in csv.DictReader(handle)]
    return [line.strip() for line in path.read_text().splitlines() if line.strip()]


def run_import(
    input_path: Path,
    mode: str,
    options: ImportOptions,
) -> None:
    settings = get_settings()
    Base.metadata.create_all(bind=engine)
    orchestrator = build_orchestrator(settings, SessionLocal, mode=mode)

    try:
        submission = orchestrator.submit(read_inputs(input_path), options)
    except (InputError, BudgetExceeded) as exc:
        logger.error("Import rejected: %s", exc.message)
        raise SystemExit(1) from exc
    for rejected in submission.rejected_inputs:
        logger.warning("Rejected input #%s %r: %s", rejected.index, rejected.raw, rejected.reason)
    for duplicate in submission.duplicates:
        logger.info("Duplicate input #%s %s (%s)", duplicate.index, duplicate.identifier, duplicate.match_type)

    thread = orchestrator.start(submission.job_id)
    try:
        thread.join()
    except KeyboardInterrupt:
        logger.warning("Interrupted, stopping import job %s", submission.job_id)
        orchestrator.stop(submission.job_id)
        thread.join()

    status = orchestrator.store.get_status(submission.job_id)
    if status is None:
        return
    print(
        f"job={status.id} status={status.status} total={status.total} processed={status.processed} "
        f"inserted={status.inserted} updated={status.updated} failed={status.failed} skipped={status.skipped}"
    )
    for error in status.errors:
        print(f"  {error['identifier']}: [{error['kind']}] {error['message']}")


def push_pending(limit: int) -> None:
    reconciler = build_reconciliation_engine(get_settings(), storefront=ShopifyStorefrontAdapter(get_settings()))
    with SessionLocal() as db:
        summary = reconciler.push_pending(db, limit=limit)
    print(f"attempted={summary.attempted} pushed={summary.pushed} failed={summary.failed}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Dropship product import worker")
    parser.add_argument("--input", type=Path, help="File of ASINs/URLs (.txt, .csv or .json)")
    parser.add_argument("--mode", default="live", choices=ENRICHMENT_MODES)
    parser.add_argument("--skip-existing", action="store_true", help="Leave catalog entries that already exist untouched")
    parser.add_argument("--skip-cache", action="store_true", help="Always hit the enrichment API")
    parser.add_argument("--check-titles", action="store_true", help="Also drop near-duplicate titles")
    parser.add_argument("--push", action="store_true", help="Push imported products to the storefront")
    parser.add_argument("--markup-percent", type=float, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--push-pending", type=int, metavar="LIMIT", help="Retry storefront pushes instead of importing")
    parser.add_argument("--log-level", default="INFO")

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.push_pending is not None:
        push_pending(max(1, args.push_pending))
        return
    if args.input is None:
        parser.error("--input is required unless --push-pending is given")

    run_import(
        input_path=args.input,
        mode=args.mode,
        options=ImportOptions(
            skip_existing=args.skip_existing,
            skip_cache=args.skip_cache,
            markup_percent=args.markup_percent,
            check_titles=args.check_titles,
            push_to_storefront=args.push,
            seed=args.seed,
        ),
    )


if __name__ == "__main__":
    main()
