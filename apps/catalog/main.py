from __future__ import annotations

import logging
from typing import Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_client import make_asgi_app
from pydantic import BaseModel, Field

from .config import get_settings
from .errors import CatalogError
from .models import RegistryEntry
from .service import CatalogService

settings = get_settings()
logger = logging.getLogger(__name__)

ChainName = Literal['ethereum', 'base', 'optimism', 'polygon', 'zora']
ChainFilter = Literal['all', 'ethereum', 'base', 'optimism', 'polygon', 'zora']

app = FastAPI(title=settings.app_name, default_response_class=ORJSONResponse)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[x.strip() for x in settings.cors_origins.split(',') if x.strip()],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*']
)
app.mount('/metrics', make_asgi_app())

_service: CatalogService | None = None


class ContractRequest(BaseModel):
    address: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: str = 'book'
    description: str | None = None
    image: str | None = None
    url: str | None = None
    creator: str | None = None


class ContractUpdateRequest(BaseModel):
    name: str | None = None
    type: str | None = None
    description: str | None = None
    image: str | None = None
    url: str | None = None
    creator: str | None = None


def get_service() -> CatalogService:
    assert _service is not None
    return _service


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


@app.on_event('startup')
async def startup() -> None:
    global _service
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    _service = CatalogService.from_settings(settings)
    logger.info(
        'catalog service ready registry_entries=%s hub=%s',
        len(_service.registry.get_entries('all')),
        settings.hub_api_url
    )


@app.on_event('shutdown')
async def shutdown() -> None:
    global _service
    if _service is not None:
        await _service.aclose()
        _service = None


@app.get('/health')
async def health() -> dict[str, str]:
    return {'status': 'ok'}


@app.get('/collections')
async def collections(
    chain: ChainFilter = Query(default='all'),
    limit: int | None = Query(default=None, ge=1, le=1000),
    service: CatalogService = Depends(get_service)
) -> dict:
    rows = service.list_collections(chain, limit=limit)
    return {'items': [row.to_payload() for row in rows]}


@app.get('/collections/{chain}/{address}')
async def collection_detail(
    chain: ChainFilter,
    address: str,
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, ge=1, le=100),
    service: CatalogService = Depends(get_service)
) -> dict:
    try:
        detail = await service.get_collection_detail(address, chain, page=page, page_size=page_size)
    except CatalogError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    return detail.to_payload()


@app.get('/items/{chain}/{address}/{token_id}')
async def item_detail(
    chain: ChainName,
    address: str,
    token_id: str,
    service: CatalogService = Depends(get_service)
) -> dict:
    try:
        item = await service.get_item_detail(address, chain, token_id)
    except CatalogError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    return item.to_payload()


@app.get('/registry')
async def registry_entries(
    chain: ChainFilter = Query(default='all'),
    service: CatalogService = Depends(get_service)
) -> dict:
    entries: list[RegistryEntry] = service.registry.get_entries(chain)
    return {'entries': [entry.to_dict() for entry in entries]}


@app.post('/registry/sync')
async def registry_sync(service: CatalogService = Depends(get_service)) -> dict:
    try:
        adopted = await service.sync_remote_registry()
    except CatalogError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    return {'adopted': adopted}


@app.post('/registry/publish')
async def registry_publish(
    authorization: str | None = Header(default=None),
    service: CatalogService = Depends(get_service)
) -> dict:
    try:
        await service.publish_registry(_bearer_token(authorization))
    except CatalogError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    return {'status': 'published'}


@app.post('/registry/{chain}')
def registry_add(
    chain: ChainName,
    req: ContractRequest,
    service: CatalogService = Depends(get_service)
) -> dict:
    added = service.add_custom_contract(chain, req.model_dump(exclude_none=True))
    return {'added': added}


@app.patch('/registry/{chain}/{address}')
def registry_update(
    chain: ChainName,
    address: str,
    req: ContractUpdateRequest,
    service: CatalogService = Depends(get_service)
) -> dict:
    updated = service.update_custom_contract(chain, address, req.model_dump(exclude_none=True))
    return {'updated': updated}


@app.delete('/registry/{chain}/{address}')
def registry_remove(
    chain: ChainName,
    address: str,
    service: CatalogService = Depends(get_service)
) -> dict:
    return {'removed': service.remove_custom_contract(chain, address)}


@app.get('/')
async def root() -> dict:
    return {'service': settings.app_name, 'status': 'ok'}
