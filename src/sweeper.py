"""One-shot maintenance sweeps for the dispatch core.

Designed to be triggered periodically by an external scheduler (cron, K8s
CronJob), either by running this script or by calling the matching
``/maintenance/*`` API endpoints. Each run executes:
- SweepUnassignedOrders: re-dispatches approved orders still waiting for a
  courier and escalates those past the dispatch deadline
- ExpireVerificationCodes: expires lapsed pickup/delivery codes
- ReleaseMaturedEarnings: makes pending earnings available after their hold

Usage:
    python src/sweeper.py                      # Run every sweep once
    python src/sweeper.py --only code_expiry   # Run a single sweep

Example crontab entry:
    * * * * * cd /srv/dispatch && python src/sweeper.py
"""

import argparse

import structlog

from dispatch.domain import dispatch
from dispatch.ledger.release import ReleaseMaturedEarnings
from dispatch.matching.sweep import SweepUnassignedOrders
from dispatch.verification.expiry import ExpireVerificationCodes

logger = structlog.get_logger("sweeper")

SWEEPS = {
    "dispatch": SweepUnassignedOrders,
    "code_expiry": ExpireVerificationCodes,
    "earnings_release": ReleaseMaturedEarnings,
}


def run_sweeps(names=None) -> dict:
    """Run the named sweeps (all by default) inside the dispatch domain context."""
    results = {}
    with dispatch.domain_context():
        for name in names or SWEEPS:
            try:
                results[name] = dispatch.process(SWEEPS[name](), asynchronous=False)
            except Exception as exc:
                # One failing sweep must not stop the others
                logger.exception("Sweep failed", sweep=name, error=str(exc))
                results[name] = None
    return results


def main():
    parser = argparse.ArgumentParser(description="Dispatch core maintenance sweeps")
    parser.add_argument("--only", choices=sorted(SWEEPS), action="append", help="Sweep to run (repeatable)")
    args = parser.parse_args()

    dispatch.init()
    results = run_sweeps(args.only)
    logger.info("Sweeps finished", **{k: v for k, v in results.items() if v is not None})
    if any(v is None for v in results.values()):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
