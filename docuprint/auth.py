"""Ambient credentials for documentation behind a login.

DocuPrint never signs in by itself. It reuses what the user already has:
cookies, extra request headers, a Playwright storage state exported from a
browser session, or a persistent browser profile. One ``AuthConfig`` feeds
both the headless browser that reads the sidebar and the HTTP client that
fetches the pages.

    from docuprint.auth import AuthConfig, build_browser_config, http_client_kwargs

    auth = AuthConfig(storage_state="./auth_state.json")
    browser_cfg = build_browser_config(auth)      # crawl4ai BrowserConfig
    client_kwargs = http_client_kwargs(auth)      # cookies/headers for httpx
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx
from crawl4ai import BrowserConfig

LOGGER = logging.getLogger(__name__)

STORAGE_STATE_ENV = "CRAWL_AUTH_STORAGE_STATE"
COOKIES_FILE_ENV = "CRAWL_AUTH_COOKIES_FILE"
PROFILE_ENV = "CRAWL_AUTH_PROFILE"


class AuthConfigError(ValueError):
    """Raised when the supplied credentials cannot be used."""


def _read_json(path: Path, what: str) -> Any:
    if not path.is_file():
        raise AuthConfigError(f"{what} file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except json.JSONDecodeError as exc:
        raise AuthConfigError(f"{what} contains invalid JSON: {path}") from exc


@dataclass
class AuthConfig:
    """Credentials reused for discovery and fetching. Every field is optional.

    ``cookies`` are Playwright-style dicts (``name``, ``value``, ``domain``,
    optional ``path``). ``storage_state`` is a file path and
    ``storage_state_data`` the same content inline. ``user_data_dir`` only
    reaches the discovery browser.
    """

    cookies: Optional[List[Dict[str, Any]]] = None
    headers: Optional[Dict[str, str]] = None
    storage_state: Optional[str] = None
    storage_state_data: Optional[Dict[str, Any]] = None
    user_data_dir: Optional[str] = None
    use_persistent_context: bool = False

    def __post_init__(self) -> None:
        # a profile directory only works with a persistent context
        self.use_persistent_context = self.use_persistent_context or bool(self.user_data_dir)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AuthConfig":
        """Build from a plain dict, rejecting keys that are not fields."""
        known = {item.name for item in fields(cls)} - {"use_persistent_context"}
        unknown = sorted(set(data) - known)
        if unknown:
            raise AuthConfigError(f"Unsupported auth fields: {', '.join(unknown)}")
        return cls(**{key: value for key, value in data.items() if value is not None})

    @property
    def is_empty(self) -> bool:
        return not any(
            (
                self.cookies,
                self.headers,
                self.storage_state,
                self.storage_state_data,
                self.user_data_dir,
            )
        )

    def resolved_storage_state(self) -> Optional[Dict[str, Any]]:
        """Inline storage state, else the parsed ``storage_state`` file.

        Raises:
            AuthConfigError: If the file is missing or not JSON.
        """
        if self.storage_state_data:
            return self.storage_state_data
        if not self.storage_state:
            return None
        path = Path(self.storage_state).expanduser()
        state = _read_json(path, "Storage state")
        LOGGER.debug("Loaded storage state from %s", path)
        return state

    def all_cookies(self) -> List[Dict[str, Any]]:
        """Explicit cookies followed by the storage state's cookies."""
        state = self.resolved_storage_state() or {}
        return [*(self.cookies or []), *(state.get("cookies") or [])]


AuthInput = Union[AuthConfig, Mapping[str, Any]]


def resolve_auth(auth: Optional[AuthInput]) -> Optional[AuthConfig]:
    """Normalize ``auth`` to an AuthConfig, or None when it carries nothing.

    The storage state is read here so a bad file fails the request before
    any page is crawled.

    Raises:
        AuthConfigError: On unknown fields or an unreadable storage state.
    """
    if auth is None:
        return None
    config = auth if isinstance(auth, AuthConfig) else AuthConfig.from_mapping(auth)
    if config.is_empty:
        return None
    config.resolved_storage_state()
    return config


def build_browser_config(auth: Optional[AuthConfig] = None) -> BrowserConfig:
    """crawl4ai BrowserConfig for the discovery browser."""
    if auth is None or auth.is_empty:
        return BrowserConfig(use_persistent_context=False)

    kwargs: Dict[str, Any] = {"use_persistent_context": auth.use_persistent_context}
    if auth.cookies:
        kwargs["cookies"] = auth.cookies
    if auth.headers:
        kwargs["headers"] = auth.headers
    state = auth.resolved_storage_state()
    if state:
        kwargs["storage_state"] = state
    if auth.user_data_dir:
        kwargs["user_data_dir"] = auth.user_data_dir

    LOGGER.info(
        "Discovery browser auth: %s",
        ", ".join(key for key in kwargs if key != "use_persistent_context") or "none",
    )
    return BrowserConfig(**kwargs)


def http_client_kwargs(auth: Optional[AuthConfig] = None) -> Dict[str, Any]:
    """Keyword arguments carrying ``auth`` into an ``httpx.AsyncClient``."""
    if auth is None or auth.is_empty:
        return {}

    kwargs: Dict[str, Any] = {}
    cookies = httpx.Cookies()
    for cookie in auth.all_cookies():
        name = cookie.get("name")
        if not name:
            continue
        cookies.set(
            name,
            str(cookie.get("value", "")),
            domain=cookie.get("domain") or "",
            path=cookie.get("path") or "/",
        )
    if len(cookies):
        kwargs["cookies"] = cookies
    if auth.headers:
        kwargs["headers"] = dict(auth.headers)
    return kwargs


def load_auth_from_env() -> Optional[AuthConfig]:
    """Credentials named by ``CRAWL_AUTH_*`` variables, or None.

    ``CRAWL_AUTH_STORAGE_STATE`` and ``CRAWL_AUTH_PROFILE`` are paths passed
    through as-is; ``CRAWL_AUTH_COOKIES_FILE`` is read here. A missing
    cookies file is logged and skipped.
    """
    storage_state = os.environ.get(STORAGE_STATE_ENV) or None
    cookies_file = os.environ.get(COOKIES_FILE_ENV) or None
    profile = os.environ.get(PROFILE_ENV) or None
    if not any((storage_state, cookies_file, profile)):
        return None

    cookies = None
    if cookies_file:
        path = Path(cookies_file).expanduser()
        if path.is_file():
            cookies = _read_json(path, "Cookies")
            LOGGER.info("Loaded %d cookie(s) from %s", len(cookies), path)
        else:
            LOGGER.warning("Cookies file not found: %s", path)

    return AuthConfig(storage_state=storage_state, cookies=cookies, user_data_dir=profile)


def load_auth_from_file(path: str) -> AuthConfig:
    """Credentials from a JSON object with AuthConfig field names.

    Raises:
        FileNotFoundError: If the file does not exist.
        AuthConfigError: If it is not JSON or has unknown keys.
    """
    config_path = Path(path).expanduser()
    if not config_path.is_file():
        raise FileNotFoundError(f"Auth config file not found: {config_path}")
    data = _read_json(config_path, "Auth config")
    if not isinstance(data, dict):
        raise AuthConfigError(f"Auth config must be a JSON object: {config_path}")
    return AuthConfig.from_mapping(data)
