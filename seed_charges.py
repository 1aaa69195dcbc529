#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
seed_charges.py - Push charge rule documents to the admin API

Goal
- Populate a fresh environment with the bundled rule sets (one per category plus the
  global default) so checkout has charges to evaluate.

Usage examples
1) Preview what would be sent:
   python seed_charges.py --dry-run

2) Seed a local admin service:
   python seed_charges.py --base-url http://localhost:5000/api/admin --token "$ADMIN_TOKEN"

3) Seed from a custom definitions directory:
   python seed_charges.py --rules-dir ./my_rules --base-url https://admin.example.com/api/admin

Notes
- Every document is parsed with the same loader the evaluator uses before anything is
  sent; a document that fails document-level validation aborts the run.
- Documents are POSTed one by one to {base-url}/charges. Existing documents are not touched.
"""

from __future__ import annotations

import argparse
import json
import os
import random
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import requests
import yaml

from marketplace_charges.charge_rules.errors import InvalidRuleSetError
from marketplace_charges.charge_rules.loader import RULE_FILE_SUFFIXES, parse_rule_set
from marketplace_charges.config import BUNDLED_RULES_DIR

# -----------------------------
# Helpers
# -----------------------------


def read_documents(rules_dir: Path) -> List[Tuple[str, Dict[str, Any]]]:
    """Raw documents (as stored by the admin API) with their file of origin."""
    out: List[Tuple[str, Dict[str, Any]]] = []
    for p in sorted(rules_dir.iterdir()):
        if not p.is_file() or p.suffix.lower() not in RULE_FILE_SUFFIXES:
            continue
        text = p.read_text(encoding="utf-8")
        data = json.loads(text) if p.suffix.lower() == ".json" else yaml.safe_load(text)
        docs = data if isinstance(data, list) else [data]
        for i, doc in enumerate(docs):
            out.append((p.name if len(docs) == 1 else f"{p.name}[{i}]", doc))
    return out


def describe(doc: Dict[str, Any]) -> List[str]:
    title = "DEFAULT" if doc.get("isDefault") else str(doc.get("categoryName") or doc.get("categoryId")).upper()
    lines = [f"{title}:"]
    for charge in doc.get("charges") or []:
        value = charge.get("value")
        amount = f"₹{value}" if charge.get("calculationType", "fixed") == "fixed" else f"{value}%"
        lines.append(f"  {str(charge.get('chargeType')).upper()}: {amount} - {charge.get('description', '')}")
    return lines


def http_post_json(
    session: requests.Session,
    url: str,
    payload: Dict[str, Any],
    retries: int = 4,
    backoff: float = 1.2,
) -> Dict[str, Any]:
    last_ex: Optional[Exception] = None
    for attempt in range(retries):
        try:
            r = session.post(url, json=payload, timeout=(10, 60))
            if 400 <= r.status_code < 500:
                # Client errors will not improve on retry
                raise RuntimeError(f"POST {url} rejected ({r.status_code}): {r.text[:300]}")
            r.raise_for_status()
            return r.json() if r.content else {}
        except requests.RequestException as ex:
            last_ex = ex
            sleep_s = (backoff ** attempt) + random.random() * 0.25
            time.sleep(sleep_s)
    raise RuntimeError(f"POST failed after retries: {last_ex}") from last_ex


def main() -> int:
    ap = argparse.ArgumentParser(description="Seed charge rule documents into the admin API.")
    ap.add_argument("--rules-dir", default=str(BUNDLED_RULES_DIR), help="Directory of YAML/JSON rule documents.")
    ap.add_argument("--base-url", default=os.getenv("MARKETPLACE_CHARGES_STORE_URL", ""), help="Admin API base URL.")
    ap.add_argument("--token", default=os.getenv("MARKETPLACE_CHARGES_STORE_TOKEN", ""), help="Admin bearer token.")
    ap.add_argument("--dry-run", action="store_true", help="Validate and print the documents without sending them.")
    args = ap.parse_args()

    rules_dir = Path(args.rules_dir)
    if not rules_dir.is_dir():
        print(f"[error] rules dir not found: {rules_dir}")
        return 1

    documents = read_documents(rules_dir)
    for source, doc in documents:
        try:
            rs = parse_rule_set(doc, source=source)
        except InvalidRuleSetError as ex:
            print(f"[error] {ex}")
            return 1
        for issue in rs.issues:
            print(f"[warn] {source}: rule #{issue.rule_index} will be skipped at evaluation ({issue.message})")

    print(f"Found {len(documents)} charge documents in {rules_dir}")
    for _, doc in documents:
        print("\n" + "\n".join(describe(doc)))

    if args.dry_run:
        print("\n[ok] dry run, nothing sent")
        return 0
    if not args.base_url:
        print("[error] --base-url (or MARKETPLACE_CHARGES_STORE_URL) is required unless --dry-run")
        return 1

    session = requests.Session()
    session.headers.update({"Accept": "application/json"})
    if args.token:
        session.headers["Authorization"] = f"Bearer {args.token}"

    url = args.base_url.rstrip("/") + "/charges"
    created = 0
    for source, doc in documents:
        http_post_json(session, url, doc)
        created += 1
        print(f"[ok] {source} -> {url}")

    print(f"\nCreated {created} charge documents")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
