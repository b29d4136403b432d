from __future__ import annotations

import logging
import random
from typing import Any

from .config import Settings, get_settings
from .contract_registry import ContractRegistry
from .custom_store import CustomContractStore, resolve_store_path
from .errors import (
    CancellationToken,
    CatalogError,
    CollectionNotFound,
    UpstreamUnavailable,
    ValidationFailure
)
from .historical_context import apply_historical_context
from .metadata_resolver import DEFAULT_IPFS_GATEWAY, normalize_ipfs, resolve_item
from .models import (
    DEFAULT_ENTRY_TYPE,
    CollectionDetail,
    RegistryEntry,
    ResolvedCollection,
    ResolvedItem,
    is_known_chain,
    normalize_address
)
from .pagination import CollectionPager
from .predefined import is_alexandria
from .upstream import HubApiClient, RegistryApiClient

logger = logging.getLogger(__name__)

REGISTRY_FALLBACK_WARNING = 'Could not fetch specific token metadata. Showing collection data instead.'

_SUPPLY_KEYS = ('totalSupply', 'maxSupply')
_COLLECTION_INFO_EXTRAS = ('format', 'symbol', 'contractType', 'standard')


def _safe_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _checkpoint(cancel_token: CancellationToken | None) -> None:
    if cancel_token is not None:
        cancel_token.raise_if_abandoned()


def asset_type_for(entry: RegistryEntry | None) -> str:
    if entry is None:
        return DEFAULT_ENTRY_TYPE
    if is_alexandria(entry):
        return 'alexandria_book'
    return entry.type or DEFAULT_ENTRY_TYPE


class CatalogService:
    """Sequences registry lookups, upstream fetches and pagination."""

    def __init__(
        self,
        registry: ContractRegistry,
        hub: HubApiClient,
        pager: CollectionPager,
        registry_api: RegistryApiClient | None = None,
        *,
        default_page_size: int = 20,
        registry_api_key: str = '',
        ipfs_gateway: str = DEFAULT_IPFS_GATEWAY
    ) -> None:
        self.registry = registry
        self.hub = hub
        self.pager = pager
        self.registry_api = registry_api
        self.default_page_size = default_page_size
        self.registry_api_key = registry_api_key
        self.ipfs_gateway = ipfs_gateway

    @classmethod
    def from_settings(cls, settings: Settings | None = None, rng: random.Random | None = None) -> CatalogService:
        settings = settings or get_settings()
        store = CustomContractStore(
            resolve_store_path(settings.custom_contracts_path),
            settings.custom_contracts_namespace
        )
        hub = HubApiClient(
            settings.hub_api_url,
            timeout=settings.request_timeout_seconds,
            batch_timeout=settings.batch_timeout_seconds
        )
        pager = CollectionPager(
            hub,
            default_total_supply=settings.default_total_supply,
            probe_samples=settings.alternate_probe_samples,
            include_ownership=settings.include_ownership,
            ipfs_gateway=settings.ipfs_gateway,
            rng=rng
        )
        return cls(
            ContractRegistry(store),
            hub,
            pager,
            RegistryApiClient(settings.registry_api_url, timeout=settings.request_timeout_seconds),
            default_page_size=settings.default_page_size,
            registry_api_key=settings.registry_api_key,
            ipfs_gateway=settings.ipfs_gateway
        )

    async def aclose(self) -> None:
        await self.hub.aclose()
        if self.registry_api is not None:
            await self.registry_api.aclose()

    def _collection_from_entry(self, entry: RegistryEntry) -> ResolvedCollection:
        return ResolvedCollection(
            contract_address=entry.address,
            chain=entry.chain or '',
            name=entry.name,
            description=entry.description or '',
            type=entry.type,
            image_uri=normalize_ipfs(entry.image, self.ipfs_gateway) or '',
            content_uri=entry.url,
            total_supply=_safe_int(entry.extra.get('totalSupply')),
            max_supply=_safe_int(entry.extra.get('maxSupply')),
            creator=entry.creator,
            additional_data={
                key: value for key, value in entry.extra.items() if key not in _SUPPLY_KEYS
            }
        )

    def _merge_collection_info(self, collection: ResolvedCollection, info: dict[str, Any]) -> None:
        total_supply = _safe_int(info.get('totalSupply'))
        if total_supply is not None:
            collection.total_supply = total_supply
        max_supply = _safe_int(info.get('maxSupply'))
        if max_supply is not None:
            collection.max_supply = max_supply

        # Curated registry fields win; upstream only fills gaps.
        if collection.creator is None:
            collection.creator = _text(info.get('creator'))
        if not collection.description:
            collection.description = _text(info.get('description')) or ''
        if not collection.image_uri:
            image = _text(info.get('imageURI')) or _text(info.get('image'))
            collection.image_uri = normalize_ipfs(image, self.ipfs_gateway) or ''
        for key in _COLLECTION_INFO_EXTRAS:
            if info.get(key) is not None:
                collection.additional_data.setdefault(key, info[key])

    def _collection_from_info(self, address: str, chain: str, info: dict[str, Any]) -> ResolvedCollection:
        collection = ResolvedCollection(
            contract_address=normalize_address(address),
            chain=chain,
            name=_text(info.get('name')) or 'Unknown Collection',
            type=_text(info.get('assetType')) or DEFAULT_ENTRY_TYPE
        )
        self._merge_collection_info(collection, info)
        return collection

    def list_collections(self, chain: str = 'all', limit: int | None = None) -> list[ResolvedCollection]:
        collections = [
            apply_historical_context(self._collection_from_entry(entry))
            for entry in self.registry.get_entries(chain)
        ]
        if limit is not None:
            return collections[:max(0, limit)]
        return collections

    async def get_collection_detail(
        self,
        address: str,
        chain: str,
        page: int = 1,
        page_size: int | None = None,
        cancel_token: CancellationToken | None = None
    ) -> CollectionDetail:
        page_size = page_size or self.default_page_size
        entry = self.registry.find_by_address(address, chain)

        if entry is not None:
            collection = self._collection_from_entry(entry)
            asset_type = asset_type_for(entry)
            try:
                info = await self.hub.fetch_collection_info(entry.address, collection.chain, asset_type)
            except UpstreamUnavailable as exc:
                logger.warning(
                    'collection-info unavailable, using registry data chain=%s address=%s: %s',
                    collection.chain, entry.address, exc
                )
                info = None
            _checkpoint(cancel_token)
            if info:
                self._merge_collection_info(collection, info)
        else:
            if not is_known_chain(chain):
                raise CollectionNotFound(f'collection {address} not found in registry')
            asset_type = DEFAULT_ENTRY_TYPE
            try:
                info = await self.hub.fetch_collection_info(address, chain, asset_type)
            except UpstreamUnavailable as exc:
                logger.warning('collection not in registry and upstream lookup failed chain=%s address=%s: %s', chain, address, exc)
                raise CollectionNotFound(f'collection {address} not found on {chain}') from exc
            _checkpoint(cancel_token)
            collection = self._collection_from_info(address, chain, info)

        apply_historical_context(collection)

        window = await self.pager.get_page(
            collection.contract_address,
            collection.chain,
            page,
            page_size,
            asset_type=asset_type,
            total_supply=collection.total_supply,
            collection_name=collection.name,
            cancel_token=cancel_token
        )
        _checkpoint(cancel_token)
        return CollectionDetail(collection=collection, page=window)

    def _registry_item(self, entry: RegistryEntry, token_id: str) -> ResolvedItem:
        additional_data = {
            'author': entry.creator,
            'publisher': entry.extra.get('publisher')
        }
        return ResolvedItem(
            contract_address=entry.address,
            chain=entry.chain or '',
            token_id=token_id,
            title=f'{entry.name} #{token_id}',
            description=entry.description or '',
            image_uri=normalize_ipfs(entry.image, self.ipfs_gateway) or '',
            content_uri=entry.url,
            creator=entry.creator,
            additional_data={key: value for key, value in additional_data.items() if value is not None},
            warning=REGISTRY_FALLBACK_WARNING
        )

    async def get_item_detail(
        self,
        address: str,
        chain: str,
        token_id: str | int,
        cancel_token: CancellationToken | None = None
    ) -> ResolvedItem:
        token_id = str(token_id).strip()
        if not token_id:
            raise ValidationFailure('token id is required')

        entry = self.registry.find_by_address(address, chain)
        item_chain = entry.chain if entry is not None else chain
        if not is_known_chain(item_chain):
            raise CollectionNotFound(f'collection {address} not found in registry')
        item_address = entry.address if entry is not None else normalize_address(address)

        try:
            payload = await self.hub.fetch_token_metadata(
                item_address, item_chain, token_id, asset_type_for(entry)
            )
        except UpstreamUnavailable as exc:
            _checkpoint(cancel_token)
            if entry is None:
                raise
            logger.warning(
                'token metadata unavailable, using registry data chain=%s address=%s token_id=%s: %s',
                item_chain, item_address, token_id, exc
            )
            return self._registry_item(entry, token_id)
        _checkpoint(cancel_token)

        item = resolve_item(
            payload,
            contract_address=item_address,
            chain=item_chain,
            token_id=token_id,
            collection_name=entry.name if entry is not None else None,
            ipfs_gateway=self.ipfs_gateway
        )
        if entry is not None:
            if not item.description:
                item.description = entry.description or ''
            if not item.image_uri:
                item.image_uri = normalize_ipfs(entry.image, self.ipfs_gateway) or ''
            if item.creator is None:
                item.creator = entry.creator
        return item

    def add_custom_contract(self, chain: str, entry: RegistryEntry | dict[str, Any]) -> bool:
        return self.registry.add_entry(chain, entry)

    def remove_custom_contract(self, chain: str, address: str) -> bool:
        return self.registry.remove_entry(chain, address)

    def update_custom_contract(self, chain: str, address: str, changes: dict[str, Any]) -> bool:
        return self.registry.update_entry(chain, address, changes)

    async def sync_remote_registry(self) -> int:
        if self.registry_api is None:
            raise CatalogError('registry service is not configured', status_code=503)
        mapping = await self.registry_api.fetch_registry()
        adopted = sum(len(entries) for entries in mapping.values())
        if adopted == 0:
            logger.warning('remote registry returned no entries; keeping predefined registry')
            return 0
        self.registry.replace_predefined(mapping)
        logger.info('predefined registry replaced from remote service entries=%s', adopted)
        return adopted

    async def publish_registry(self, api_key: str | None = None) -> Any:
        if self.registry_api is None:
            raise CatalogError('registry service is not configured', status_code=503)
        key = (api_key or self.registry_api_key).strip()
        if not key:
            raise ValidationFailure('registry api key is required to publish')
        mapping = self.registry.to_chain_map()
        result = await self.registry_api.update_registry(mapping, key)
        logger.info(
            'registry published entries=%s',
            sum(len(entries) for entries in mapping.values())
        )
        return result
