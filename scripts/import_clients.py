#!/usr/bin/env python3
"""
Import tenants from a Google Sheet shared as "Anyone with the link can view".

Reads the sheet's CSV export (columns: slug, businessName, packageTier, email)
and creates or updates one tenant per row, keyed by slug.
"""
import argparse
import csv
import io
import logging
import sys
from pathlib import Path

import requests

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from reviewdesk.database import init_db, session_scope
from reviewdesk.models import Tenant
from reviewdesk.text import slugify

logger = logging.getLogger("import_clients")

PACKAGE_TIERS = ("basic", "pro", "enterprise")


def export_url(sheet_id: str, gid: str = "0") -> str:
    return f"https://docs.google.com/spreadsheets/d/{sheet_id}/export?format=csv&gid={gid}"


def fetch_rows(sheet_id: str, gid: str = "0") -> list[dict]:
    resp = requests.get(export_url(sheet_id, gid), timeout=15)
    if resp.status_code in (403, 404):
        raise RuntimeError(
            'Cannot access Google Sheet. Make sure it is shared as "Anyone with the link can view".'
        )
    resp.raise_for_status()
    return list(csv.DictReader(io.StringIO(resp.text)))


def upsert_tenants(rows: list[dict], db) -> dict[str, int]:
    """Create or update tenants by slug. Rows without a usable slug are skipped."""
    counts = {"created": 0, "updated": 0, "skipped": 0}
    for row in rows:
        business_name = (row.get("businessName") or "").strip()
        slug = slugify(row.get("slug") or business_name)
        if not slug or not business_name:
            counts["skipped"] += 1
            continue
        tier = (row.get("packageTier") or "basic").strip().lower()
        if tier not in PACKAGE_TIERS:
            tier = "basic"

        tenant = db.query(Tenant).filter(Tenant.slug == slug).first()
        if tenant:
            tenant.business_name = business_name
            tenant.package_tier = tier
            counts["updated"] += 1
        else:
            db.add(Tenant(name=business_name, slug=slug, business_name=business_name, package_tier=tier))
            counts["created"] += 1
        contact = (row.get("email") or "").strip()
        if contact:
            logger.info("Tenant %s contact: %s", slug, contact)
    db.commit()
    return counts


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("sheet_id", help="Spreadsheet ID from the sheet URL")
    parser.add_argument("--gid", default="0", help="Tab GID (0 is the first tab)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    init_db()
    rows = fetch_rows(args.sheet_id, args.gid)
    logger.info("Fetched %d rows from sheet", len(rows))
    with session_scope() as db:
        counts = upsert_tenants(rows, db)
    print(f"Created {counts['created']}, updated {counts['updated']}, skipped {counts['skipped']} tenants")
    return 0


if __name__ == "__main__":
    sys.exit(main())
