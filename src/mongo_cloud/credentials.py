"""API key resolution.

Atlas programmatic API keys are a public/private pair used as the
username and password of HTTP digest auth. They come from explicit
values first, then the ``MCLI_PUBLIC_API_KEY`` / ``MCLI_PRIVATE_API_KEY``
environment variables.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import ValidationError

from mongo_cloud.config import ENV_PRIVATE_KEY, ENV_PUBLIC_KEY
from mongo_cloud.errors import ConfigError
from mongo_cloud.models import Credentials


def resolve_credentials(
    public_key: str | None = None,
    private_key: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> Credentials:
    """Build ``Credentials`` from explicit values or the environment.

    Raises:
        ConfigError: If either half of the key pair is missing.
    """
    env = os.environ if environ is None else environ
    public_key = public_key or env.get(ENV_PUBLIC_KEY)
    private_key = private_key or env.get(ENV_PRIVATE_KEY)

    missing = [
        name for name, value in (
            (ENV_PUBLIC_KEY, public_key), (ENV_PRIVATE_KEY, private_key),
        ) if not value
    ]
    if missing:
        raise ConfigError(
            "Atlas API key not configured. Pass --user/--password or set "
            + " and ".join(missing) + "."
        )

    try:
        return Credentials(public_key=public_key, private_key=private_key)
    except ValidationError as exc:
        raise ConfigError(f"Invalid Atlas API key: {exc}") from exc
