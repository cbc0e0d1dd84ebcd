"""
Default Rules — the bundled rule set and a loader for user rule files.

Rule files are JSON, either {"rules": [...]} (the browser extension's export
format) or a bare list of rule objects.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from prism.models.rule_models import Rule

logger = logging.getLogger("prism.rules")

DEFAULT_RULES: list[dict] = [
    {
        "id": "aws-access-key",
        "name": "AWS Access Key",
        "patterns": [r"(?:A3T[A-Z0-9]|AKIA|ASIA|ABIA|ACCA)[0-9A-Z]{16}"],
    },
    {
        "id": "google-api-key",
        "name": "Google API Key",
        "patterns": [r"AIza[0-9A-Za-z\-_]{35}"],
    },
    {
        "id": "github-token",
        "name": "GitHub Token",
        "patterns": [r"gh[pousr]_[0-9A-Za-z]{36}", r"github_pat_[0-9A-Za-z_]{82}"],
    },
    {
        "id": "slack-token",
        "name": "Slack Token",
        "patterns": [r"xox[baprs]-[0-9A-Za-z\-]{10,48}"],
    },
    {
        "id": "slack-webhook",
        "name": "Slack Webhook",
        "patterns": [r"https://hooks\.slack\.com/services/T[0-9A-Z]+/B[0-9A-Z]+/[0-9A-Za-z]+"],
    },
    {
        "id": "stripe-secret-key",
        "name": "Stripe Secret Key",
        "patterns": [r"sk_live_[0-9a-zA-Z]{24,99}", r"rk_live_[0-9a-zA-Z]{24,99}"],
    },
    {
        "id": "private-key",
        "name": "Private Key",
        "patterns": [r"-----BEGIN (?:RSA |EC |DSA |OPENSSH |PGP )?PRIVATE KEY(?: BLOCK)?-----"],
    },
    {
        "id": "jwt",
        "name": "JSON Web Token",
        "patterns": [r"eyJ[A-Za-z0-9_-]{10,}\.eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}"],
    },
    {
        "id": "generic-api-key",
        "name": "Generic API Key",
        "enabled": False,
        "patterns": [
            r"""(?:api[_-]?key|apikey|secret|token)["']?\s*[:=]\s*["'][0-9a-zA-Z\-_]{16,64}["']"""
        ],
    },
]


def default_rules() -> list[Rule]:
    return [Rule.model_validate(r) for r in DEFAULT_RULES]


def load_rules(path: str | Path | None = None) -> list[Rule]:
    """
    Load rules from a JSON file, or the bundled defaults when path is None.

    Raises:
        FileNotFoundError: path does not exist.
        ValueError: the file is not valid JSON or not a rule list.
    """
    if path is None:
        return default_rules()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Rules file not found: {path}")

    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e.msg} (line {e.lineno} column {e.colno})") from e

    raw_rules = data.get("rules", []) if isinstance(data, dict) else data
    if not isinstance(raw_rules, list):
        raise ValueError(f"{path} does not contain a list of rules")

    rules = [Rule.model_validate(r) for r in raw_rules]
    logger.info(f"Loaded {len(rules)} rules from {path}")
    return rules
