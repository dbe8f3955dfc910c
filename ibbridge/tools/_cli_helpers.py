"""Shared CLI helper utilities for tool scripts.

Lightweight, no heavy imports at module import time to keep `--describe` fast.

    * print_json – stable deterministic JSON (sorted keys, flush)
    * DescribeSchema – minimal validation of describe payloads
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from typing import Any


def print_json(data: dict[str, Any]) -> int:
    """Pretty-print JSON deterministically and return zero."""
    sys.stdout.write(json.dumps(data, indent=2, sort_keys=True, default=str) + "\n")
    sys.stdout.flush()
    return 0


@dataclass
class DescribeSchema:
    required_top_keys: tuple[str, ...] = (
        "name",
        "description",
        "inputs",
        "outputs",
        "dependencies",
        "examples",
    )

    def validate(self, data: dict[str, Any]) -> list[str]:
        errs: list[str] = []
        for k in self.required_top_keys:
            if k not in data:
                errs.append(f"missing key: {k}")
        if not isinstance(data.get("inputs"), dict | list):
            errs.append("inputs must be dict or list")
        if not isinstance(data.get("outputs"), dict):
            errs.append("outputs must be dict")
        return errs
