"""Provider roster seeding.

Loads field workers from the bundled ``providers.json`` (or a custom
path) and registers them in the complaint repository so a fresh
deployment can dispatch immediately.  Designed to run once at
application startup, and skipped for providers already registered.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from src.models.complaint import Provider

if TYPE_CHECKING:
    from src.services.repository import ComplaintRepository

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_DATA_DIR: Path = Path(__file__).resolve().parent
_DEFAULT_ROSTER_PATH: Path = _DATA_DIR / "providers.json"


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_providers(path: Path | None = None) -> list[Provider]:
    """Read a JSON list of providers.

    Each entry needs ``name`` and ``department`` (the display name, e.g.
    ``"Water Resources"``); ``provider_id`` and ``email`` are optional.
    Invalid entries are logged and skipped.

    Raises
    ------
    FileNotFoundError
        If the roster file does not exist.
    json.JSONDecodeError
        If the JSON is malformed.
    """
    file_path = path or _DEFAULT_ROSTER_PATH

    if not file_path.exists():
        raise FileNotFoundError(f"Provider roster not found: {file_path}")

    with file_path.open("r", encoding="utf-8") as f:
        raw_providers: list[dict] = json.load(f)

    providers: list[Provider] = []
    for raw in raw_providers:
        try:
            providers.append(Provider.model_validate(raw))
        except ValidationError as exc:
            logger.warning(
                "seed.invalid_provider",
                name=raw.get("name", "unknown"),
                errors=exc.error_count(),
            )

    logger.info("seed.loaded_providers", count=len(providers), source=str(file_path))
    return providers


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


async def seed_providers(
    repository: ComplaintRepository,
    *,
    path: Path | None = None,
) -> list[Provider]:
    """Register every roster provider not already in *repository*.

    Returns the providers that were added.
    """
    providers = load_providers(path)
    if not providers:
        logger.warning("seed.no_providers_loaded")
        return []

    added: list[Provider] = []
    for provider in providers:
        if await repository.get_provider(provider.provider_id) is not None:
            continue
        added.append(await repository.add_provider(provider))

    logger.info("seed.complete", added=len(added), skipped=len(providers) - len(added))
    return added
