from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CHAINS: tuple[str, ...] = ('ethereum', 'base', 'optimism', 'polygon', 'zora')

# Entry types form an open set; unknown types are carried through as-is.
DEFAULT_ENTRY_TYPE = 'book'

_ENTRY_FIELDS = {
    'address': 'address',
    'name': 'name',
    'type': 'type',
    'description': 'description',
    'image': 'image',
    'url': 'url',
    'creator': 'creator',
    'addedAt': 'added_at'
}


def normalize_address(value: Any) -> str:
    return str(value or '').strip().lower()


def is_known_chain(chain: Any) -> bool:
    return isinstance(chain, str) and chain in CHAINS


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class RegistryEntry:
    address: str
    name: str
    type: str = DEFAULT_ENTRY_TYPE
    chain: str | None = None
    description: str | None = None
    image: str | None = None
    url: str | None = None
    creator: str | None = None
    added_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_custom(self) -> bool:
        return self.added_at is not None

    @classmethod
    def from_dict(cls, payload: dict[str, Any], chain: str | None = None) -> RegistryEntry:
        address = normalize_address(payload.get('address'))
        name = _optional_str(payload.get('name'))
        if not address or not name:
            raise ValueError('registry entry requires address and name')

        # Older custom records were stamped with dateAdded.
        added_at = _optional_str(payload.get('addedAt') or payload.get('dateAdded'))
        extra = {
            key: value
            for key, value in payload.items()
            if key not in _ENTRY_FIELDS and key not in {'chain', 'dateAdded'}
        }
        return cls(
            address=address,
            name=name,
            type=_optional_str(payload.get('type')) or DEFAULT_ENTRY_TYPE,
            chain=chain or _optional_str(payload.get('chain')),
            description=_optional_str(payload.get('description')),
            image=_optional_str(payload.get('image')),
            url=_optional_str(payload.get('url')),
            creator=_optional_str(payload.get('creator')),
            added_at=added_at,
            extra=extra
        )

    def to_dict(self, include_chain: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload['address'] = self.address
        payload['name'] = self.name
        payload['type'] = self.type
        for key in ('description', 'image', 'url', 'creator'):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        if self.added_at is not None:
            payload['addedAt'] = self.added_at
        if include_chain and self.chain is not None:
            payload['chain'] = self.chain
        return payload


@dataclass
class ResolvedCollection:
    contract_address: str
    chain: str
    name: str
    description: str = ''
    type: str = DEFAULT_ENTRY_TYPE
    image_uri: str = ''
    content_uri: str | None = None
    total_supply: int | None = None
    max_supply: int | None = None
    creator: str | None = None
    historical_significance: str | None = None
    features: list[str] = field(default_factory=list)
    additional_data: dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return self.name

    def to_payload(self) -> dict[str, Any]:
        return {
            'contractAddress': self.contract_address,
            'chain': self.chain,
            'name': self.name,
            'title': self.title,
            'description': self.description,
            'type': self.type,
            'imageURI': self.image_uri,
            'contentURI': self.content_uri,
            'totalSupply': self.total_supply,
            'maxSupply': self.max_supply,
            'creator': self.creator,
            'historicalSignificance': self.historical_significance,
            'features': list(self.features),
            'additionalData': dict(self.additional_data)
        }


@dataclass
class ResolvedItem:
    contract_address: str
    chain: str
    token_id: str
    title: str
    description: str = ''
    image_uri: str = ''
    content_uri: str | None = None
    creator: str | None = None
    owner: str | None = None
    additional_data: dict[str, Any] = field(default_factory=dict)
    # Set when the item was synthesized from the registry after an upstream failure.
    warning: str | None = None

    @property
    def has_content(self) -> bool:
        return self.content_uri is not None

    def to_payload(self) -> dict[str, Any]:
        payload = {
            'contractAddress': self.contract_address,
            'chain': self.chain,
            'tokenId': self.token_id,
            'title': self.title,
            'description': self.description,
            'imageURI': self.image_uri,
            'contentURI': self.content_uri,
            'creator': self.creator,
            'owner': self.owner,
            'additionalData': dict(self.additional_data)
        }
        if self.warning:
            payload['warning'] = self.warning
        return payload


@dataclass
class PaginatedWindow:
    page: int
    page_size: int
    items: list[ResolvedItem] = field(default_factory=list)
    alternate_probe_used: bool = False

    @property
    def has_next_page(self) -> bool:
        return len(self.items) >= self.page_size

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    def to_payload(self) -> dict[str, Any]:
        return {
            'page': self.page,
            'pageSize': self.page_size,
            'items': [item.to_payload() for item in self.items],
            'hasNextPage': self.has_next_page,
            'hasPrevPage': self.has_prev_page,
            'alternateProbeUsed': self.alternate_probe_used
        }


@dataclass
class CollectionDetail:
    collection: ResolvedCollection
    page: PaginatedWindow

    def to_payload(self) -> dict[str, Any]:
        return {
            'collection': self.collection.to_payload(),
            'page': self.page.to_payload()
        }
