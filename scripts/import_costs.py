#!/usr/bin/env python3
"""
Cost Import Script

Imports variant unit costs from a spreadsheet (CSV or XLSX) with
`variant_id` and `unit_cost` columns (`sku` optional).

Manual costs already in the database are never overwritten.

Usage:
    python scripts/import_costs.py --shop store.myshopify.com --file imports/costs.csv
"""
import sys
import argparse
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd

from profit_decisions.models.base import SessionLocal, init_db
from profit_decisions.services.cost_service import CostService

REQUIRED_COLUMNS = {'variant_id', 'unit_cost'}


def read_cost_rows(file_path: Path):
    if file_path.suffix.lower() in ('.xlsx', '.xls'):
        df = pd.read_excel(file_path, dtype={'variant_id': str, 'sku': str})
    else:
        df = pd.read_csv(file_path, dtype={'variant_id': str, 'sku': str})

    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Missing columns: {', '.join(sorted(missing))}")

    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient='records')


def main():
    parser = argparse.ArgumentParser(description='Import variant unit costs')
    parser.add_argument('--shop', required=True, help='Shop domain')
    parser.add_argument('--file', '-f', required=True, help='CSV or XLSX file')

    args = parser.parse_args()

    rows = read_cost_rows(Path(args.file))
    print(f"Read {len(rows)} rows from {args.file}")

    init_db()
    db = SessionLocal()
    try:
        result = CostService(db).bulk_import_costs(args.shop, rows)
    finally:
        db.close()

    print(f"Imported: {result['imported']}")
    print(f"Skipped (manual cost kept): {result['skipped']}")
    for error in result['errors']:
        print(f"  {error}")


if __name__ == '__main__':
    main()
