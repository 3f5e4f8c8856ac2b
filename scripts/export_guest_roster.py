#!/usr/bin/env python3
"""
Export a wedding's full guest roster to a spreadsheet.

Writes every guest with every projected event column, in the same layout
as the download from the guest table.

Usage:
    python scripts/export_guest_roster.py <wedding_id> [--csv] [--out DIR]

Options:
    --csv        Write CSV instead of XLSX
    --out DIR    Directory to write into (default: current directory)
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import asyncio
from datetime import date

from app.core.database import engine
from app.core.errors import StoreReadError
from app.roster.columns import project_columns
from app.roster.export import export_filename, write_csv, write_xlsx
from app.roster.loader import load_guest_roster
from app.store.client import SQLRecordStore


async def export_roster(wedding_id: str, out_dir: Path, as_csv: bool = False) -> Path | None:
    """Load the roster straight from the database and write it to out_dir."""
    store = SQLRecordStore(engine)

    weddings = await store.query("weddings", equals={"id": wedding_id}, limit=1)
    if not weddings:
        print(f"Error: No wedding with id {wedding_id}")
        return None
    wedding = weddings[0]

    projection = await load_guest_roster(store, wedding_id)
    columns = project_columns(projection.events)
    extension = "csv" if as_csv else "xlsx"
    path = out_dir / export_filename(wedding["bride_name"], wedding["groom_name"], date.today(), extension)

    if as_csv:
        with open(path, "w", newline="", encoding="utf-8") as f:
            write_csv(columns, projection.rows, f, projection.meal_lookup)
    else:
        with open(path, "wb") as f:
            write_xlsx(columns, projection.rows, f, projection.meal_lookup)

    print(f"Wrote {len(projection.rows)} guest(s) and {len(projection.events)} event(s) to {path}")
    return path


def main(argv: list[str]):
    args = [arg for arg in argv if not arg.startswith("--")]
    if not args:
        print(__doc__)
        sys.exit(1)

    out_dir = Path.cwd()
    if "--out" in argv:
        index = argv.index("--out")
        if index + 1 >= len(argv):
            print("Error: --out needs a directory")
            sys.exit(1)
        out_dir = Path(argv[index + 1])
        args.remove(argv[index + 1])
    out_dir.mkdir(parents=True, exist_ok=True)

    try:
        path = asyncio.run(export_roster(args[0], out_dir, as_csv="--csv" in argv))
    except StoreReadError as e:
        print(f"Error: Could not read the roster: {e}")
        sys.exit(1)
    if path is None:
        sys.exit(1)


if __name__ == "__main__":
    main(sys.argv[1:])
