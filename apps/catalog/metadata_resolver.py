"""Canonical field extraction from shape-varying NFT metadata payloads.

Upstream payloads may be flat, may nest a ``metadata`` object, and may encode
``metadata``/``additionalData`` as JSON strings. Every lookup here walks an
ordered list of candidate locations and takes the first non-empty string.
Field-name lists are plain data; adding a synonym never needs a new branch.
"""
from __future__ import annotations

import json
import re
from typing import Any

from .models import ResolvedItem

DEFAULT_IPFS_GATEWAY = 'https://ipfs.io/ipfs/'

PRIORITY_CONTENT_FIELDS: tuple[str, ...] = ('interactive_url', 'animation_url')

CONTENT_URL_SYNONYMS: tuple[str, ...] = (
    'contentURI',
    'content_uri',
    'fileURI',
    'file_uri',
    'external_url',
    'externalUrl',
    'content_url',
    'contentUrl',
    'url'
)

IMAGE_FIELDS: tuple[str, ...] = ('imageURI', 'image')

# properties.<source> -> additionalData.<target>
PUBLICATION_PROPERTY_FIELDS: tuple[tuple[str, str], ...] = (
    ('publisher', 'publisher'),
    ('page_count', 'pageCount'),
    ('language', 'language'),
    ('publication_date', 'publicationDate')
)

_URL_IN_TEXT = re.compile(r'https?://[^\s]+')
_EDITION_SUFFIX = re.compile(r' #\d+$')


class UnresolvableToken(ValueError):
    pass


def parse_json_field(value: Any) -> dict[str, Any] | None:
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _views(payload: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any], dict[str, Any]]:
    metadata = parse_json_field(payload.get('metadata')) or {}
    additional = parse_json_field(payload.get('additionalData')) or {}
    return payload, metadata, additional


def _first_text(sources: tuple[dict[str, Any], ...], fields: tuple[str, ...]) -> str | None:
    for source in sources:
        for name in fields:
            value = _text(source.get(name))
            if value is not None:
                return value
    return None


def _properties(top: dict[str, Any], metadata: dict[str, Any]) -> dict[str, Any]:
    for source in (top, metadata):
        parsed = parse_json_field(source.get('properties'))
        if parsed:
            return parsed
    return {}


def _attributes(top: dict[str, Any], metadata: dict[str, Any]) -> list[Any]:
    for source in (top, metadata):
        attributes = source.get('attributes')
        if isinstance(attributes, list) and attributes:
            return attributes
    return []


def normalize_ipfs(uri: str | None, gateway: str = DEFAULT_IPFS_GATEWAY) -> str | None:
    if uri is None or not uri.startswith('ipfs://'):
        return uri
    path = uri[len('ipfs://'):]
    if path.startswith('ipfs/'):
        path = path[len('ipfs/'):]
    return gateway.rstrip('/') + '/' + path


def _find_content_uri(payload: dict[str, Any]) -> str | None:
    top, metadata, additional = _views(payload)
    sources = (top, metadata, additional)

    for name in PRIORITY_CONTENT_FIELDS:
        value = _first_text(sources, (name,))
        if value is not None:
            return value

    value = _first_text(sources, CONTENT_URL_SYNONYMS)
    if value is not None:
        return value

    for description in (top.get('description'), metadata.get('description')):
        if isinstance(description, str):
            match = _URL_IN_TEXT.search(description)
            if match:
                return match.group(0)

    # Something clickable beats nothing.
    return _first_text((top,), IMAGE_FIELDS) or _text(metadata.get('image'))


def resolve_content_uri(payload: dict[str, Any], ipfs_gateway: str = DEFAULT_IPFS_GATEWAY) -> str | None:
    """Return the content link for a payload, or ``None`` when there is none.

    ``None`` means "no content available" and is distinct from a failed fetch.
    """
    return normalize_ipfs(_find_content_uri(payload), ipfs_gateway)


def resolve_title(
    payload: dict[str, Any],
    collection_name: str | None = None,
    token_id: str | None = None
) -> str:
    top, metadata, _ = _views(payload)

    title = _first_text((top, metadata), ('title',))
    if title is not None:
        return title

    name = _first_text((top, metadata), ('name',))
    if name is not None:
        stripped = _EDITION_SUFFIX.sub('', name).strip()
        if stripped:
            return stripped

    properties = _properties(top, metadata)
    for key in ('title', 'work'):
        value = _text(properties.get(key))
        if value is not None:
            return value

    prefix = collection_name or 'Token'
    if token_id is None:
        return prefix
    return f'{prefix} #{token_id}'


def resolve_author(payload: dict[str, Any]) -> str | None:
    top, metadata, _ = _views(payload)

    author = _text(_properties(top, metadata).get('author'))
    if author is not None:
        return author

    for attribute in _attributes(top, metadata):
        if isinstance(attribute, dict) and attribute.get('trait_type') == 'Author':
            value = _text(attribute.get('value'))
            if value is not None:
                return value

    return _first_text((top, metadata), ('creator',))


def resolve_publication_fields(payload: dict[str, Any]) -> dict[str, Any]:
    top, metadata, _ = _views(payload)
    properties = _properties(top, metadata)

    fields: dict[str, Any] = {}
    author = resolve_author(payload)
    if author is not None:
        fields['author'] = author
    for source_key, target_key in PUBLICATION_PROPERTY_FIELDS:
        value = properties.get(source_key)
        if value is None:
            value = top.get(target_key)
        if value not in (None, ''):
            fields[target_key] = value
    attributes = _attributes(top, metadata)
    if attributes:
        fields['attributes'] = attributes
    return fields


def extract_token_id(payload: dict[str, Any]) -> str | None:
    for key in ('tokenId', 'token_id', 'id'):
        value = payload.get(key)
        if value is None or isinstance(value, bool):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def resolve_item(
    payload: Any,
    *,
    contract_address: str,
    chain: str,
    token_id: str | None = None,
    collection_name: str | None = None,
    ipfs_gateway: str = DEFAULT_IPFS_GATEWAY
) -> ResolvedItem:
    if not isinstance(payload, dict):
        raise UnresolvableToken(f'token payload is not an object: {type(payload).__name__}')

    resolved_id = token_id if token_id is not None else extract_token_id(payload)
    if resolved_id is None:
        raise UnresolvableToken('token payload carries no token id')

    top, metadata, additional = _views(payload)
    image = _first_text((top,), IMAGE_FIELDS) or _text(metadata.get('image')) or ''

    additional_data: dict[str, Any] = {**metadata, **additional}
    additional_data.update(resolve_publication_fields(payload))

    return ResolvedItem(
        contract_address=contract_address,
        chain=chain,
        token_id=str(resolved_id),
        title=resolve_title(payload, collection_name=collection_name, token_id=str(resolved_id)),
        description=_first_text((top, metadata), ('description',)) or '',
        image_uri=normalize_ipfs(image, ipfs_gateway) or '',
        content_uri=resolve_content_uri(payload, ipfs_gateway),
        creator=_first_text((top, metadata), ('creator',)),
        owner=_text(top.get('owner')),
        additional_data=additional_data
    )
