#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import time
import urllib.error
import urllib.request
import uuid
from datetime import datetime, timezone


def http_request(url: str, method: str = 'GET', payload: dict | None = None, timeout: int = 10) -> dict:
    body = json.dumps(payload).encode('utf-8') if payload is not None else None
    req = urllib.request.Request(
        url=url,
        method=method,
        data=body,
        headers={'Content-Type': 'application/json'}
    )
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        return json.loads(resp.read().decode('utf-8'))


def wait_for_health(api: str, timeout_seconds: int) -> None:
    deadline = time.time() + timeout_seconds
    last_error: Exception | None = None
    while time.time() < deadline:
        try:
            if http_request(f'{api}/health').get('status') == 'ok':
                return
        except (OSError, ValueError) as exc:
            last_error = exc
        time.sleep(2)
    raise TimeoutError(f'api health timed out. last_error={last_error}')


def main() -> None:
    parser = argparse.ArgumentParser(description='Catalog registry add -> list -> detail -> remove check')
    parser.add_argument('--api-base', default='http://localhost:8000', help='Catalog API base URL')
    parser.add_argument('--chain', default='base', help='Chain to register the probe contract on')
    parser.add_argument('--timeout', type=int, default=60, help='Timeout seconds')
    args = parser.parse_args()

    api = args.api_base.rstrip('/')

    print('[check] waiting for API health...')
    wait_for_health(api, args.timeout)

    listed = http_request(f'{api}/collections?chain=all')
    print(f"[check] registry lists {len(listed.get('items', []))} collections")

    address = f'0x{uuid.uuid4().hex}{uuid.uuid4().hex[:8]}'
    added = http_request(
        f'{api}/registry/{args.chain}',
        method='POST',
        payload={'address': address, 'name': 'Smoke Check Collection', 'type': 'nft'}
    )
    if not added.get('added'):
        raise RuntimeError(f'custom contract was not added: {added}')
    print(f'[check] custom contract added address={address}')

    duplicate = http_request(
        f'{api}/registry/{args.chain}',
        method='POST',
        payload={'address': address.upper().replace('0X', '0x'), 'name': 'Smoke Check Collection'}
    )
    if duplicate.get('added'):
        raise RuntimeError('duplicate custom contract was accepted')

    entries = http_request(f'{api}/registry?chain={args.chain}').get('entries', [])
    if not any(entry.get('address') == address for entry in entries):
        raise RuntimeError('custom contract missing from registry listing')

    try:
        detail = http_request(f'{api}/collections/{args.chain}/{address}?page=1&page_size=4', timeout=45)
        page = detail.get('page', {})
        print(f"[check] collection detail resolved items={len(page.get('items', []))} probe={page.get('alternateProbeUsed')}")
    except urllib.error.HTTPError as exc:
        print(f'[check] collection detail returned status={exc.code}')

    removed = http_request(f'{api}/registry/{args.chain}/{address}', method='DELETE')
    if not removed.get('removed'):
        raise RuntimeError(f'custom contract was not removed: {removed}')
    print('[check] custom contract removed')

    print(
        json.dumps(
            {
                'status': 'ok',
                'checked_at': datetime.now(timezone.utc).isoformat(),
                'api_base': api,
                'address': address
            },
            indent=2
        )
    )


if __name__ == '__main__':
    main()
