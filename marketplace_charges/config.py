#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
config.py

Configuration constants and defaults for the marketplace charges engine.

Key idea: one rule store, many front doors
------------------------------------------
Charge rules live in exactly one place at a time:

- a directory of YAML/JSON rule documents (local development, tests, the bundled
  seed definitions), or
- the admin service that owns the persisted rule documents (production).

Everything here can be overridden through environment variables so the same
code runs against either store without edits.
"""

import os
from pathlib import Path

# ---------------------------------------------------------------------
# Rule store: local definitions
# ---------------------------------------------------------------------
# BUNDLED_RULES_DIR:
# - Seed rule sets shipped with the package (one document per category plus
#   the global default document).
BUNDLED_RULES_DIR = Path(__file__).resolve().parent / "definitions"

# RULES_DIR:
# - Directory the FileRuleStore reads when no directory is passed explicitly.
# - Override with MARKETPLACE_CHARGES_RULES_DIR.
RULES_DIR = Path(os.getenv("MARKETPLACE_CHARGES_RULES_DIR", str(BUNDLED_RULES_DIR)))

# ---------------------------------------------------------------------
# Rule store: admin service
# ---------------------------------------------------------------------
# RULE_STORE_URL:
# - Base URL of the admin API that serves charge documents, e.g.
#   "https://admin.example.com/api/admin".
# - Empty means "use the local definitions directory".
RULE_STORE_URL = os.getenv("MARKETPLACE_CHARGES_STORE_URL", "").strip()

# Timeouts for the rule-store lookup. This is the only I/O on the evaluation
# path, so the timeout policy lives here and nowhere else.
RULE_STORE_TIMEOUT_SECONDS = float(os.getenv("MARKETPLACE_CHARGES_STORE_TIMEOUT", "10"))
RULE_STORE_CONNECT_TIMEOUT_SECONDS = float(os.getenv("MARKETPLACE_CHARGES_STORE_CONNECT_TIMEOUT", "5"))

# RULE_STORE_TOKEN:
# - Optional bearer token for the admin API (the CRUD endpoints are admin-only).
RULE_STORE_TOKEN = os.getenv("MARKETPLACE_CHARGES_STORE_TOKEN", "").strip()

# ---------------------------------------------------------------------
# Logging / tracing
# ---------------------------------------------------------------------
DEFAULT_LOG_LEVEL = os.getenv("MARKETPLACE_CHARGES_LOG_LEVEL", "INFO")

# LOG_FILE:
# - If set, the CLI also writes log records to this file.
LOG_FILE = os.getenv("MARKETPLACE_CHARGES_LOG_FILE", "").strip()

# TRACE_FILE:
# - Optional JSONL trace of every evaluation (selected rule set, computed charges).
# - Useful for post-mortem analysis of "why was I charged X".
TRACE_FILE = os.getenv("MARKETPLACE_CHARGES_TRACE_FILE", "").strip()

# ---------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------
# Amounts are plain numbers internally; the symbol is only used by the CLI tables.
CURRENCY_SYMBOL = os.getenv("MARKETPLACE_CHARGES_CURRENCY_SYMBOL", "₹")

# What an end user sees when the rule store cannot be reached. Internal error
# details go to the log, never to this message.
USER_FACING_ERROR = "Unable to calculate charges, please retry."
