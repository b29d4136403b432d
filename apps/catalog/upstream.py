from __future__ import annotations

import logging
from typing import Any, Iterable
from urllib.parse import quote

import httpx
from prometheus_client import Counter

from .custom_store import empty_chain_map
from .errors import UpstreamUnavailable
from .predefined import normalize_chain_map

logger = logging.getLogger(__name__)

UPSTREAM_REQUESTS_TOTAL = Counter(
    'pagedao_catalog_upstream_requests_total',
    'Requests to the Hub metadata and Registry services',
    ['service', 'endpoint', 'outcome']
)


def _path(*segments: Any) -> str:
    # Caller-supplied addresses and token ids must stay inside their own segment.
    return '/' + '/'.join(quote(str(segment), safe='') for segment in segments)


def unwrap_envelope(payload: Any) -> Any:
    """Strip a ``{success, data}`` wrapper; a ``success: false`` body is a failure."""
    if not isinstance(payload, dict):
        return payload
    if payload.get('success') is False:
        raise UpstreamUnavailable(f"upstream reported failure: {payload.get('error') or payload.get('message') or 'unknown'}")
    if 'success' in payload and 'data' in payload:
        return payload['data']
    if set(payload) == {'data'}:
        return payload['data']
    return payload


class _JsonServiceClient:
    service = 'upstream'

    def __init__(
        self,
        base_url: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={'Content-Type': 'application/json'}
        )

    async def _request(
        self,
        method: str,
        endpoint: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None
    ) -> Any:
        options: dict[str, Any] = {}
        if params is not None:
            options['params'] = params
        if json_body is not None:
            options['json'] = json_body
        if headers is not None:
            options['headers'] = headers
        if timeout is not None:
            options['timeout'] = timeout

        try:
            response = await self._client.request(method, path, **options)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            UPSTREAM_REQUESTS_TOTAL.labels(service=self.service, endpoint=endpoint, outcome='error').inc()
            raise UpstreamUnavailable(f'{self.service} {endpoint} request failed: {exc}') from exc
        except ValueError as exc:
            UPSTREAM_REQUESTS_TOTAL.labels(service=self.service, endpoint=endpoint, outcome='invalid_json').inc()
            raise UpstreamUnavailable(f'{self.service} {endpoint} returned invalid json') from exc

        UPSTREAM_REQUESTS_TOTAL.labels(service=self.service, endpoint=endpoint, outcome='ok').inc()
        return payload

    async def aclose(self) -> None:
        await self._client.aclose()


class HubApiClient(_JsonServiceClient):
    service = 'hub'

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        batch_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        super().__init__(base_url, timeout, transport=transport)
        self.batch_timeout = batch_timeout

    async def fetch_collection_info(self, address: str, chain: str, asset_type: str = 'book') -> dict[str, Any]:
        payload = await self._request(
            'GET',
            'collection-info',
            _path('nft', address, chain, 'collection-info'),
            params={'assetType': asset_type}
        )
        data = unwrap_envelope(payload)
        if not isinstance(data, dict):
            raise UpstreamUnavailable('hub collection-info returned a non-object body')
        return data

    async def fetch_token_metadata(
        self,
        address: str,
        chain: str,
        token_id: str,
        asset_type: str = 'book'
    ) -> dict[str, Any]:
        payload = await self._request(
            'GET',
            'token',
            _path('nft', address, chain, token_id),
            params={'assetType': asset_type}
        )
        data = unwrap_envelope(payload)
        if not isinstance(data, dict):
            raise UpstreamUnavailable('hub token metadata returned a non-object body')
        return data

    async def fetch_token_batch(
        self,
        address: str,
        chain: str,
        token_ids: Iterable[str],
        asset_type: str = 'book',
        include_ownership: bool = False
    ) -> list[Any]:
        payload = await self._request(
            'GET',
            'batch',
            _path('nft', 'batch', address, chain),
            params={
                'assetType': asset_type,
                'tokenIds': ','.join(str(token_id) for token_id in token_ids),
                'includeOwnership': 'true' if include_ownership else 'false'
            },
            timeout=self.batch_timeout
        )
        data = unwrap_envelope(payload)
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get('items'), list):
            return data['items']
        return []


class RegistryApiClient(_JsonServiceClient):
    service = 'registry'

    async def fetch_registry(self) -> dict[str, list[dict[str, Any]]]:
        try:
            payload = await self._request('GET', 'registry', '/registry')
            return normalize_chain_map(unwrap_envelope(payload))
        except UpstreamUnavailable as exc:
            logger.warning('registry service unavailable, using empty registry: %s', exc)
            return empty_chain_map()

    async def update_registry(self, mapping: dict[str, list[dict[str, Any]]], api_key: str) -> Any:
        payload = await self._request(
            'PUT',
            'registry',
            '/registry',
            json_body=mapping,
            headers={'Authorization': f'Bearer {api_key}'}
        )
        return unwrap_envelope(payload)
