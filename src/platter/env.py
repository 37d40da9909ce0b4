import os
from dataclasses import replace
from typing import Any, Union

from .policies import coerce_retry_config
from .types import AuthCredential, OAuth1Auth, TokenAuth

DEFAULT_PREFIX = "DISCOGS_"
OAUTH_FIELDS = ("CONSUMER_KEY", "CONSUMER_SECRET", "ACCESS_TOKEN", "ACCESS_TOKEN_SECRET")


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export ") :]
                if "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        # A missing file just means "use the process environment"
        pass
    return values


def _env_map(env_path: Union[str, None]) -> dict[str, str]:
    # actual environment takes precedence over the .env file
    file_env = _parse_env_file(env_path) if env_path else {}
    return {**file_env, **os.environ}


def load_credential_from_env(
    env_path: Union[str, None] = None, prefix: str = DEFAULT_PREFIX
) -> Union[AuthCredential, None]:
    """Create a credential from environment variables.

    - ``<prefix>TOKEN`` yields a TokenAuth.
    - Otherwise all four of ``<prefix>CONSUMER_KEY``, ``<prefix>CONSUMER_SECRET``,
        ``<prefix>ACCESS_TOKEN`` and ``<prefix>ACCESS_TOKEN_SECRET`` yield an OAuth1Auth.
    - A partial OAuth set raises ValueError; nothing at all returns None.
    """
    return _credential_from_map(_env_map(env_path), prefix)


def _credential_from_map(env: dict[str, str], prefix: str) -> Union[AuthCredential, None]:
    token = env.get(f"{prefix}TOKEN")
    if token:
        return TokenAuth(token)
    values = {name: env.get(f"{prefix}{name}") for name in OAUTH_FIELDS}
    found = [name for name, v in values.items() if v]
    if not found:
        return None
    if len(found) != len(OAUTH_FIELDS):
        missing = sorted(f"{prefix}{n}" for n in OAUTH_FIELDS if n not in found)
        raise ValueError(f"incomplete OAuth credentials in environment; missing {missing}")
    return OAuth1Auth(
        consumer_key=values["CONSUMER_KEY"],
        consumer_secret=values["CONSUMER_SECRET"],
        access_token=values["ACCESS_TOKEN"],
        access_token_secret=values["ACCESS_TOKEN_SECRET"],
    )


def load_settings_from_env(
    env_path: Union[str, None] = None, prefix: str = DEFAULT_PREFIX
) -> dict[str, Any]:
    """Collect executor keyword arguments from the environment.

    Recognized variables (with the default prefix):
    DISCOGS_USER_AGENT, DISCOGS_BASE_URL, DISCOGS_TIMEOUT,
    DISCOGS_RETRY_PRESET, DISCOGS_MAX_RETRIES, plus the credential variables
    read by load_credential_from_env. Only variables that are set appear in
    the result, so executor defaults still apply.
    """
    env = _env_map(env_path)
    settings: dict[str, Any] = {"credential": _credential_from_map(env, prefix)}
    if env.get(f"{prefix}USER_AGENT"):
        settings["user_agent"] = env[f"{prefix}USER_AGENT"]
    if env.get(f"{prefix}BASE_URL"):
        settings["base_url"] = env[f"{prefix}BASE_URL"]
    if env.get(f"{prefix}TIMEOUT"):
        settings["timeout"] = float(env[f"{prefix}TIMEOUT"])

    preset = env.get(f"{prefix}RETRY_PRESET")
    max_retries = env.get(f"{prefix}MAX_RETRIES")
    if max_retries:
        settings["retry_config"] = replace(
            coerce_retry_config(preset or None), max_retries=int(max_retries)
        )
    elif preset:
        settings["retry_config"] = preset
    return settings
