"""Credential flags shared by the CLI entrypoints."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .auth import AuthConfig, load_auth_from_env, load_auth_from_file

PROFILE_STATE_FILE = "storage_state.json"


def add_auth_args(parser: argparse.ArgumentParser) -> None:
    """Register the credential options in their own help group."""
    group = parser.add_argument_group(
        "credentials",
        "Reuse an existing login; DocuPrint never signs in by itself.",
    )
    group.add_argument(
        "--storage-state",
        metavar="PATH",
        help="Playwright storage_state JSON exported from a logged-in browser",
    )
    group.add_argument(
        "--auth-file",
        metavar="PATH",
        help="JSON file with cookies, headers, storage_state and/or user_data_dir",
    )
    group.add_argument(
        "--cookies",
        metavar="JSON|PATH",
        help="Cookies as a JSON object/list, or a file containing one",
    )
    group.add_argument(
        "--header",
        action="append",
        metavar="'KEY: VALUE'",
        help="Extra request header, repeatable",
    )
    group.add_argument(
        "--auth-profile",
        metavar="DIR",
        help="Persistent browser profile used while reading the sidebar",
    )


def parse_cookies(value: Optional[str]) -> Optional[List[Dict[str, Any]]]:
    """Inline JSON or a JSON file; a single object becomes a one-item list."""
    if not value:
        return None
    if value.lstrip().startswith(("[", "{")):
        parsed = json.loads(value)
    elif Path(value).expanduser().is_file():
        with open(Path(value).expanduser(), "r", encoding="utf-8") as fh:
            parsed = json.load(fh)
    else:
        logging.error("Ignoring --cookies, neither JSON nor a file: %s", value)
        return None
    return parsed if isinstance(parsed, list) else [parsed]


def parse_headers(values: Optional[List[str]]) -> Optional[Dict[str, str]]:
    if not values:
        return None
    headers: Dict[str, str] = {}
    for item in values:
        key, sep, val = item.partition(":")
        if not sep or not key.strip():
            logging.warning("Ignoring header without 'Key: Value' form: %s", item)
            continue
        headers[key.strip()] = val.strip()
    return headers or None


def _profile_storage_state(profile: Optional[str]) -> Optional[str]:
    if not profile:
        return None
    candidate = Path(profile).expanduser() / PROFILE_STATE_FILE
    if candidate.is_file():
        logging.info("Using storage state saved in profile: %s", candidate)
        return str(candidate)
    return None


def build_cli_auth(
    args: argparse.Namespace,
    auth_loader: Callable[[], Optional[AuthConfig]] = load_auth_from_env,
) -> Optional[AuthConfig]:
    """Credentials from ``--auth-file``, then individual flags, then env vars."""
    auth_file = getattr(args, "auth_file", None)
    if auth_file:
        return load_auth_from_file(auth_file)

    profile = getattr(args, "auth_profile", None)
    config = AuthConfig(
        cookies=parse_cookies(getattr(args, "cookies", None)),
        headers=parse_headers(getattr(args, "header", None)),
        storage_state=getattr(args, "storage_state", None)
        or _profile_storage_state(profile),
        user_data_dir=profile,
    )
    if config.is_empty:
        return auth_loader()
    return config
