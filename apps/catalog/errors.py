from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    status_code = 500

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        super().__init__(detail)
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail


class CollectionNotFound(CatalogError):
    status_code = 404


class UpstreamUnavailable(CatalogError):
    status_code = 502


class ValidationFailure(CatalogError):
    status_code = 422


class SequenceAbandoned(CatalogError):
    status_code = 499


class CancellationToken:
    """Cooperative cancellation flag for one orchestrated request sequence.

    The caller keeps a reference and calls ``abandon()`` when the view that
    started the sequence goes away; the orchestrator checks the token after
    each upstream call and raises ``SequenceAbandoned`` instead of returning.
    """

    def __init__(self) -> None:
        self._abandoned = False

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    def abandon(self) -> None:
        self._abandoned = True

    def raise_if_abandoned(self) -> None:
        if self._abandoned:
            logger.debug('discarding results of abandoned request sequence')
            raise SequenceAbandoned('request sequence abandoned by caller')
