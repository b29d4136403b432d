from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'y', 'on'}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Settings:
    app_name: str
    environment: Literal['dev', 'prod', 'test']
    cors_origins: str
    log_level: str
    hub_api_url: str
    registry_api_url: str
    registry_api_key: str
    request_timeout_seconds: float
    batch_timeout_seconds: float
    default_total_supply: int
    alternate_probe_samples: int
    default_page_size: int
    include_ownership: bool
    custom_contracts_path: str
    custom_contracts_namespace: str
    predefined_registry_path: str
    ipfs_gateway: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    environment = os.getenv('ENVIRONMENT', 'dev').strip().lower()
    if environment not in {'dev', 'prod', 'test'}:
        environment = 'dev'

    return Settings(
        app_name=os.getenv('APP_NAME', 'pagedao-hub-catalog'),
        environment=environment,  # type: ignore[arg-type]
        cors_origins=os.getenv('CORS_ORIGINS', 'http://localhost:5173'),
        log_level=os.getenv('LOG_LEVEL', 'INFO').strip().upper(),
        hub_api_url=os.getenv(
            'HUB_API_URL',
            'https://pagedao-hub-serverless-api.netlify.app/.netlify/functions'
        ),
        registry_api_url=os.getenv('REGISTRY_API_URL', 'https://reggie-db.netlify.app/.netlify/functions'),
        registry_api_key=os.getenv('REGISTRY_API_KEY', ''),
        request_timeout_seconds=_env_float('REQUEST_TIMEOUT_SECONDS', 10.0),
        batch_timeout_seconds=_env_float('BATCH_TIMEOUT_SECONDS', 30.0),
        default_total_supply=max(0, _env_int('DEFAULT_TOTAL_SUPPLY', 100)),
        alternate_probe_samples=max(0, _env_int('ALTERNATE_PROBE_SAMPLES', 3)),
        default_page_size=max(1, _env_int('DEFAULT_PAGE_SIZE', 20)),
        include_ownership=_env_bool('INCLUDE_OWNERSHIP', False),
        custom_contracts_path=os.getenv('CUSTOM_CONTRACTS_PATH', 'data/custom-contracts.json'),
        custom_contracts_namespace=os.getenv('CUSTOM_CONTRACTS_NAMESPACE', 'pagedao_custom_contracts'),
        predefined_registry_path=os.getenv('PREDEFINED_REGISTRY_PATH', '').strip(),
        ipfs_gateway=os.getenv('IPFS_GATEWAY', 'https://ipfs.io/ipfs/')
    )
