from __future__ import annotations

import argparse
import csv
import logging
import os
from typing import Optional

import pandas as pd

from .common import load_config, warn_missing
from .config_loader import SuppressionConfig
from .loaders import load_suppression_csv
from .logging_utils import configure_logging
from .sql_store import SqlSuppressionStore

logger = logging.getLogger(__name__)


def build(args: argparse.Namespace, config: Optional[SuppressionConfig] = None):
    config = config or load_config(args)
    suppression_csv = getattr(args, "suppression_csv", None) or config.inputs.get(
        "suppression_csv"
    )
    if warn_missing(suppression_csv, "Suppression CSV"):
        return 1
    out_dir = str(getattr(args, "out_dir", None) or config.outputs.dir)

    imported = load_suppression_csv(
        suppression_csv,
        config.columns,
        flag_invalid_emails=config.validation.flag_invalid_entry_emails,
    )
    store = SqlSuppressionStore.from_url(config.store.url)
    added = store.add_entries(imported.entries, skip_existing=True)
    _, total = store.list_entries(limit=1)

    print(f"Added {added} entries to suppression list ({total} total)")
    if imported.flagged_emails:
        print(f"Flagged {len(imported.flagged_emails)} email(s) failing syntax validation")
    if imported.rejected:
        os.makedirs(out_dir, exist_ok=True)
        out_rejects = os.path.join(out_dir, "suppression_import_rejects.csv")
        pd.DataFrame(imported.rejected).to_csv(
            out_rejects, index=False, encoding="utf-8", quoting=csv.QUOTE_ALL
        )
        print(f"Rejected {len(imported.rejected)} row(s) without a matchable value")
        print(f"Saved: {out_rejects}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Load a suppression list CSV into the database.")
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--suppression-csv", type=str, default=None)
    parser.add_argument("--store-url", type=str, default=None)
    parser.add_argument("--out-dir", type=str, default=None)
    parser.add_argument("--log-level", type=str, default=None, help="Override logging level")
    args = parser.parse_args()
    config = load_config(args)
    configure_logging(config, level_override=args.log_level)
    return build(args, config=config)


if __name__ == "__main__":
    raise SystemExit(main())
