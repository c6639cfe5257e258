"""
Run one SLA status sweep against the configured issue store.

Usage:
  - Dry run (default): python scripts/run_sla_sweep.py
  - Write updates and send breach notifications: python scripts/run_sla_sweep.py --apply

Behavior:
  - Uses the same repository as the API (Firestore, or in-memory when USE_MOCK_DB=true).
  - Evaluates every non-terminal issue and prints the summary.

NOTE: The API already runs this sweep every SLA_SWEEP_INTERVAL_HOURS. Use this
script from cron when the API runs with SLA_SWEEP_ENABLED=false.
"""

import argparse
import json

from civictrack.dependencies import get_issue_service


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--apply", action="store_true", help="Write updates instead of dry-run")
    args = parser.parse_args()

    service = get_issue_service()
    summary = service.run_sla_sweep(apply=args.apply)

    print(json.dumps(summary, indent=2))
    if args.apply:
        print("Sweep completed.")
    else:
        print("Dry run complete. Re-run with --apply to write updates.")


if __name__ == "__main__":
    main()
