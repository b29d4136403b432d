from __future__ import annotations

import copy
import json
import logging
from functools import lru_cache
from typing import Any

from .config import get_settings
from .custom_store import empty_chain_map, resolve_store_path
from .models import CHAINS, RegistryEntry, normalize_address

logger = logging.getLogger(__name__)

STATIC_REGISTRY: dict[str, list[dict[str, Any]]] = {
    'ethereum': [
        {
            'address': '0x8338c8e0e3e713ee2502c526f4840657be9fb350',
            'name': 'Mirror Essays by Page',
            'type': 'mirror_publication'
        }
    ],
    'base': [
        {
            'address': '0x64E2C384738b9Ca2C1820a00B3C2067B8213640e',
            'name': 'Alexandria: The Inevitable',
            'type': 'alexandria_book'
        }
    ],
    'optimism': [],
    'polygon': [
        {
            'address': '0x931204Fb8CEA7F7068995dCE924F0d76d571DF99',
            'name': 'Readme Books by PageDAO',
            'type': 'book'
        }
    ],
    'zora': [
        {
            'address': '0xf4de077cfbdfea88ea04f4b0c1b52924aa507f73',
            'name': 'Zora PageDAO Collection',
            'type': 'zora_nft'
        }
    ]
}

ALEXANDRIA_BASE_ADDRESSES = frozenset(
    {
        '0x233a38ebbb401d41eacc0709e18447dca6b0b634',
        '0x64e2c384738b9ca2c1820a00b3c2067b8213640e'
    }
)


def normalize_chain_map(payload: Any) -> dict[str, list[dict[str, Any]]]:
    """Coerce a ``{chain: [entry, ...]}`` document into the five known chains."""
    result = empty_chain_map()
    if not isinstance(payload, dict):
        return result
    for chain in CHAINS:
        entries = payload.get(chain)
        if isinstance(entries, list):
            result[chain] = [dict(entry) for entry in entries if isinstance(entry, dict)]
    return result


@lru_cache(maxsize=1)
def _load_predefined_cached() -> dict[str, list[dict[str, Any]]]:
    settings = get_settings()
    if not settings.predefined_registry_path:
        return normalize_chain_map(STATIC_REGISTRY)

    path = resolve_store_path(settings.predefined_registry_path)
    if not path.exists():
        logger.warning('predefined registry file missing, using built-in map path=%s', path)
        return normalize_chain_map(STATIC_REGISTRY)

    try:
        payload = json.loads(path.read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning('predefined registry file unreadable, using built-in map path=%s: %s', path, exc)
        return normalize_chain_map(STATIC_REGISTRY)
    if not isinstance(payload, dict):
        logger.warning('predefined registry file is not an object, using built-in map path=%s', path)
        return normalize_chain_map(STATIC_REGISTRY)
    return normalize_chain_map(payload)


def load_predefined_registry() -> dict[str, list[dict[str, Any]]]:
    return copy.deepcopy(_load_predefined_cached())


load_predefined_registry.cache_clear = _load_predefined_cached.cache_clear  # type: ignore[attr-defined]


def is_alexandria(entry: RegistryEntry) -> bool:
    if entry.type == 'alexandria_book':
        return True
    return entry.chain == 'base' and normalize_address(entry.address) in ALEXANDRIA_BASE_ADDRESSES
