"""Run one sweep over every saved search from the command line.

    python run_scan.py              # all searches
    python run_scan.py <search_id>  # a single search
"""
import sys

from carfinder import crud
from carfinder.db import SessionLocal, init_db
from carfinder.services import build_scanner, scan_all, scan_one


def main(argv):
    init_db()
    db = SessionLocal()
    scanner = build_scanner()
    try:
        if argv:
            search = crud.get_search(db, argv[0])
            if search is None:
                raise SystemExit(f"Search not found: {argv[0]}")
            reports = [scan_one(db, search, scanner)]
        else:
            reports = scan_all(db, scanner)
    finally:
        scanner.resolver.client.close()
        db.close()

    for r in reports:
        print(f"{r.search_name or r.search_id}: {r.new_count} new / {r.total_scanned} scanned, "
              f"stop={r.stop_reason} pages={r.sp_min}-{r.sp_max} requests={r.requests_count}"
              + (f" error={r.error}" if r.error else ""))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
