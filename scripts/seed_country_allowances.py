from __future__ import annotations

import argparse
from pathlib import Path

from backend.services.rate_workbook import RateWorkbookService
from travel_allowance.db import apply_migrations, connect_sqlite
from travel_allowance.services import CountryAllowanceAdminService
from travel_allowance.settings import SEED_RATES_PATH, load_seed_rates


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed the country allowance table.")
    parser.add_argument("--db", default="data/travel_allowance.db", help="sqlite database path")
    parser.add_argument("--seed", default=str(SEED_RATES_PATH), help="YAML seed file")
    parser.add_argument("--export", help="also write the seeded table to this .xlsx path")
    args = parser.parse_args()

    db_path = Path(args.db)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = connect_sqlite(db_path)
    try:
        apply_migrations(conn)
        admin = CountryAllowanceAdminService(conn)
        result = admin.import_rates(load_seed_rates(args.seed))
        print(f"Seeded {len(result['imported'])} country allowance(s) into {db_path}")

        if args.export:
            output = RateWorkbookService().export_file(admin.rates.list_all(), args.export)
            print(f"Exported rate table to {output}")
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
