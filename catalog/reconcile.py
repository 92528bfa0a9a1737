from collections.abc import Iterable
from itertools import islice
from logging import getLogger

from django.db import transaction

from inventory.logging import StructuredLogger

from .conf import catalog_setting
from .models import CatalogItem

logger = getLogger(__name__)
structured_logger = StructuredLogger.get_logger(__name__)


def _slices(iterable, size):
    iterator = iter(iterable)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield batch


def reconcile(all_processed_external_ids: Iterable[str], batch_size=None) -> int:
    """
    Mark every active item which was not seen during the sync as inactive.

    An empty collection of IDs means nothing was synced, which is never a
    reason to deactivate the whole catalog, so no items are touched in that
    case. Items are only ever flipped from active to inactive: nothing is
    deleted and inactive items are not reactivated here.

    Returns:
        The number of items deactivated.
    """
    seen = set(all_processed_external_ids)
    if not seen:
        logger.info("No processed items, skipping deactivation")
        return 0

    batch_size = batch_size or catalog_setting("CATALOG_RECONCILE_BATCH_SIZE")
    deactivated = 0

    with transaction.atomic():
        # Python-side filtering keeps the query's parameter count independent
        # of the catalog size
        candidates = (
            pk
            for pk, external_id in CatalogItem.objects.active()
            .values_list("pk", "external_id")
            .iterator(chunk_size=2000)
            if external_id not in seen
        )
        stale_pks = list(candidates)

        for pks in _slices(stale_pks, batch_size):
            deactivated += CatalogItem.objects.filter(pk__in=pks, active=True).update(
                active=False
            )

    if deactivated:
        structured_logger.info(
            "Deactivated items missing from the catalog.",
            event_code="catalog_items_deactivated",
            deactivated=deactivated,
            seen=len(seen),
        )
    else:
        logger.info("No items to deactivate")

    return deactivated
