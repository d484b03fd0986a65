from __future__ import annotations

import argparse
import csv
import logging
import os
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .common import load_config, open_store, warn_missing
from .config_loader import SuppressionConfig
from .evaluator import evaluate_bulk, summarize_reasons, verdict_for
from .loaders import load_contacts_csv, load_suppression_csv
from .logging_utils import configure_logging
from .models import RAW_CONTACT_FIELDS, ContactRecord, MatchVerdict

logger = logging.getLogger(__name__)

RESULT_COLUMNS = list(RAW_CONTACT_FIELDS) + ["suppressed", "reason"]


def pct(n, d):
    return round((n / d * 100.0), 2) if d else 0.0


def _resolve_paths(
    args: argparse.Namespace, config: SuppressionConfig
) -> Tuple[Optional[str], Optional[str], str]:
    contacts_csv = getattr(args, "contacts_csv", None) or config.inputs.get("contacts_csv")
    suppression_csv = getattr(args, "suppression_csv", None) or config.inputs.get(
        "suppression_csv"
    )
    out_dir = getattr(args, "out_dir", None) or config.outputs.dir
    return contacts_csv, suppression_csv, str(out_dir)


def results_frame(
    contacts: List[ContactRecord], verdicts: Dict[str, MatchVerdict]
) -> pd.DataFrame:
    rows = []
    for contact in contacts:
        verdict = verdict_for(contact.contact_id, verdicts)
        row = contact.to_dict()
        row["suppressed"] = "true" if verdict.matched else "false"
        row["reason"] = verdict.reason or ""
        rows.append(row)
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def summary_frame(verdicts: Dict[str, MatchVerdict]) -> pd.DataFrame:
    counts = summarize_reasons(verdicts)
    return pd.DataFrame(
        [{"reason": reason, "count": count} for reason, count in counts.items()],
        columns=["reason", "count"],
    )


def build(args: argparse.Namespace, config: Optional[SuppressionConfig] = None):
    config = config or load_config(args)
    contacts_csv, suppression_csv, out_dir = _resolve_paths(args, config)
    if warn_missing(contacts_csv, "Contacts CSV"):
        logger.error("No contacts to check; refusing to report anyone as clear")
        return 1

    store = open_store(config)
    if suppression_csv:
        imported = load_suppression_csv(
            suppression_csv,
            config.columns,
            flag_invalid_emails=config.validation.flag_invalid_entry_emails,
        )
        if config.store.backend == "sql":
            store.add_entries(imported.entries, skip_existing=True)
        else:
            store.add_entries(imported.entries)
    elif config.store.backend == "memory":
        logger.warning("No suppression list given; every contact will be reported clear")

    contacts = load_contacts_csv(contacts_csv, config.columns)
    verdicts = evaluate_bulk(contacts, store)

    os.makedirs(out_dir, exist_ok=True)
    out_results = os.path.join(out_dir, "suppression_results.csv")
    results_frame(contacts, verdicts).to_csv(
        out_results, index=False, encoding="utf-8", quoting=csv.QUOTE_ALL
    )
    out_summary = os.path.join(out_dir, "suppression_summary.csv")
    summary_frame(verdicts).to_csv(
        out_summary, index=False, encoding="utf-8", quoting=csv.QUOTE_ALL
    )

    total = len({contact.contact_id for contact in contacts})
    suppressed = len(verdicts)
    print(f"Total contacts checked: {total}")
    print(f"Contacts suppressed: {suppressed}")
    print(f"Contacts clear: {total - suppressed}")
    print(f"Suppression rate: {pct(suppressed, total)}%")
    print(f"Saved: {out_results}")
    print(f"Saved: {out_summary}")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Check contacts against the suppression list before outreach."
    )
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--contacts-csv", type=str, default=None)
    parser.add_argument("--suppression-csv", type=str, default=None)
    parser.add_argument("--store-backend", type=str, default=None, choices=["memory", "sql"])
    parser.add_argument("--store-url", type=str, default=None)
    parser.add_argument("--out-dir", type=str, default=None)
    parser.add_argument("--log-level", type=str, default=None, help="Override logging level")
    args = parser.parse_args()
    config = load_config(args)
    configure_logging(config, level_override=args.log_level)
    return build(args, config=config)


if __name__ == "__main__":
    raise SystemExit(main())
