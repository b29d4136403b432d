from __future__ import annotations

import copy
from typing import Any

from .models import ResolvedCollection, normalize_address

# Curated narrative for collections with a story worth telling. Keys are
# "<chain>-<lowercased address>"; only narrative fields are ever applied.
COLLECTION_CONTEXT: dict[str, dict[str, Any]] = {
    'polygon-0x931204fb8cea7f7068995dce924f0d76d571df99': {
        'description': (
            'One of the earliest NFT book collections, Readme Books features over 200 free-to-read '
            'titles from independent authors. Since its launch in 2021, it has generated more than '
            '1 ETH in volume on OpenSea and established itself as a cornerstone of on-chain '
            'literature. Each book is permanently stored on IPFS, ensuring content remains '
            'accessible for readers.'
        ),
        'historical_significance': 'Pioneer NFT Book Collection',
        'features': [
            '200+ free-to-read books',
            'Full content stored on IPFS',
            'Community-curated literature',
            'Each token represents ownership of a unique book'
        ],
        'custom_image': '/images/collections/readme-books-banner.jpg'
    },
    'base-0x64e2c384738b9ca2c1820a00b3c2067b8213640e': {
        'description': "Alexandria's curated collection featuring works like INEVITABLE and other titles.",
        'historical_significance': 'Alexandria Labs publishing on Base'
    }
}

NARRATIVE_FIELDS = ('description', 'historical_significance', 'features')


def context_key(chain: str, address: str) -> str:
    return f'{chain}-{normalize_address(address)}'


def find_context(chain: str, address: str) -> dict[str, Any] | None:
    context = COLLECTION_CONTEXT.get(context_key(chain, address))
    return copy.deepcopy(context) if context is not None else None


def apply_historical_context(collection: ResolvedCollection) -> ResolvedCollection:
    """Shallow-merge curated narrative onto a collection built from live data.

    ``contract_address`` and ``chain`` are never touched.
    """
    context = find_context(collection.chain, collection.contract_address)
    if not context:
        return collection

    for field_name in NARRATIVE_FIELDS:
        value = context.get(field_name)
        if value:
            setattr(collection, field_name, value)
    custom_image = context.get('custom_image')
    if custom_image:
        collection.image_uri = custom_image
    return collection
