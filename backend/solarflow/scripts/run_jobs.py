from __future__ import annotations

import argparse
import json
import logging
from datetime import timedelta

from solarflow.database import SessionLocal, list_tenant_ids, tenant_scope
from solarflow.services.job_ledger import timeout_stale_runs
from solarflow.services.job_registry import job_names
from solarflow.services.job_runner import run_job

logger = logging.getLogger("solarflow.jobs")


def _tenants(args: argparse.Namespace) -> list[str]:
    if args.tenant:
        return [str(t) for t in args.tenant]
    with SessionLocal() as db:
        return list_tenant_ids(db)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run one registered background job per tenant (cron entry point)."
    )
    parser.add_argument("--job", required=True, choices=job_names())
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--tenant", action="append", help="Tenant id (repeatable)")
    target.add_argument("--all-tenants", action="store_true")
    parser.add_argument(
        "--reclaim-stale-minutes",
        type=int,
        default=0,
        help="Before running, mark RUNNING rows of this job older than N minutes as TIMEOUT",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    outcomes: dict[str, dict] = {}
    failures = 0
    for tenant_id in _tenants(args):
        try:
            if args.reclaim_stale_minutes > 0:
                with tenant_scope(tenant_id) as ts:
                    reclaimed = timeout_stale_runs(
                        ts,
                        older_than=timedelta(minutes=args.reclaim_stale_minutes),
                        job_name=args.job,
                    )
                if reclaimed:
                    logger.warning(
                        "stale_job_runs_reclaimed",
                        extra={"tenant_id": tenant_id, "job_name": args.job, "count": len(reclaimed)},
                    )

            result = run_job(tenant_id, args.job)
            outcomes[tenant_id] = {
                "skipped": result.skipped,
                "job_run_id": result.job_run_id,
                "summary": result.summary,
            }
        except Exception as exc:
            failures += 1
            outcomes[tenant_id] = {"error": str(exc) or type(exc).__name__}
            logger.exception("job_run_tenant_failed", extra={"tenant_id": tenant_id, "job_name": args.job})

    print(json.dumps({"job": args.job, "tenants": outcomes}, ensure_ascii=False, indent=2, default=str))
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
