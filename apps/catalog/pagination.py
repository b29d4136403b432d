from __future__ import annotations

import logging
import random
from typing import Any

from prometheus_client import Counter

from .errors import CancellationToken, UpstreamUnavailable
from .metadata_resolver import DEFAULT_IPFS_GATEWAY, UnresolvableToken, resolve_item
from .models import PaginatedWindow, ResolvedItem
from .upstream import HubApiClient

logger = logging.getLogger(__name__)

ALTERNATE_PROBES_TOTAL = Counter(
    'pagedao_catalog_alternate_probes_total',
    'Alternate token-id probes issued after an empty pagination window',
    ['chain', 'outcome']
)


def page_window(page: int, page_size: int, total_supply: int) -> list[str]:
    """Token ids for a 1-based page, clipped to the supply."""
    start = (page - 1) * page_size + 1
    end = min(start + page_size - 1, total_supply)
    return [str(token_id) for token_id in range(start, end + 1)]


def alternate_probe_ids(total_supply: int, samples: int, rng: random.Random) -> list[str]:
    count = max(0, min(samples, total_supply))
    drawn: list[int] = []
    seen: set[int] = set()
    while len(drawn) < count:
        token_id = rng.randint(1, total_supply)
        if token_id not in seen:
            seen.add(token_id)
            drawn.append(token_id)
    return ['0'] + [str(token_id) for token_id in drawn]


class CollectionPager:
    def __init__(
        self,
        hub: HubApiClient,
        *,
        default_total_supply: int = 100,
        probe_samples: int = 3,
        include_ownership: bool = False,
        ipfs_gateway: str = DEFAULT_IPFS_GATEWAY,
        rng: random.Random | None = None
    ) -> None:
        self.hub = hub
        self.default_total_supply = default_total_supply
        self.probe_samples = probe_samples
        self.include_ownership = include_ownership
        self.ipfs_gateway = ipfs_gateway
        self.rng = rng or random.Random()

    def effective_supply(self, total_supply: int | None) -> int:
        # Unknown or zero supply falls back to the configured placeholder.
        if not total_supply or total_supply < 0:
            return self.default_total_supply
        return total_supply

    def _resolve_all(
        self,
        records: list[Any],
        address: str,
        chain: str,
        collection_name: str | None
    ) -> list[ResolvedItem]:
        items: list[ResolvedItem] = []
        for record in records:
            try:
                items.append(
                    resolve_item(
                        record,
                        contract_address=address,
                        chain=chain,
                        collection_name=collection_name,
                        ipfs_gateway=self.ipfs_gateway
                    )
                )
            except UnresolvableToken as exc:
                logger.debug('omitting unresolvable token chain=%s address=%s: %s', chain, address, exc)
        return items

    async def _fetch(self, address: str, chain: str, token_ids: list[str], asset_type: str) -> list[Any]:
        return await self.hub.fetch_token_batch(
            address,
            chain,
            token_ids,
            asset_type=asset_type,
            include_ownership=self.include_ownership
        )

    async def get_page(
        self,
        address: str,
        chain: str,
        page: int,
        page_size: int,
        *,
        asset_type: str = 'book',
        total_supply: int | None = None,
        collection_name: str | None = None,
        cancel_token: CancellationToken | None = None
    ) -> PaginatedWindow:
        if page < 1:
            raise ValueError('page must be >= 1')
        if page_size < 1:
            raise ValueError('page_size must be >= 1')

        supply = self.effective_supply(total_supply)
        window = page_window(page, page_size, supply)
        if not window:
            return PaginatedWindow(page=page, page_size=page_size)

        try:
            records = await self._fetch(address, chain, window, asset_type)
        except UpstreamUnavailable as exc:
            logger.warning(
                'batch window failed chain=%s address=%s ids=%s-%s: %s',
                chain, address, window[0], window[-1], exc
            )
            records = []
        if cancel_token is not None:
            cancel_token.raise_if_abandoned()

        items = self._resolve_all(records, address, chain, collection_name)
        if items or supply <= 0:
            return PaginatedWindow(page=page, page_size=page_size, items=items)

        probe_ids = alternate_probe_ids(supply, self.probe_samples, self.rng)
        logger.info('empty window, probing alternate ids chain=%s address=%s ids=%s', chain, address, probe_ids)
        outcome = 'empty'
        try:
            records = await self._fetch(address, chain, probe_ids, asset_type)
        except UpstreamUnavailable as exc:
            outcome = 'error'
            logger.warning('alternate probe failed chain=%s address=%s: %s', chain, address, exc)
            records = []
        if cancel_token is not None:
            cancel_token.raise_if_abandoned()

        items = self._resolve_all(records, address, chain, collection_name)
        if items:
            outcome = 'hit'
        ALTERNATE_PROBES_TOTAL.labels(chain=chain, outcome=outcome).inc()
        return PaginatedWindow(page=page, page_size=page_size, items=items, alternate_probe_used=True)
