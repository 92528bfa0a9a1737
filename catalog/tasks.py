from django.core.management import call_command

from inventory.celery import app as celery_app


@celery_app.task(ignore_result=True)
def download_catalog_task(force=False):
    """
    Download the catalog into pending chunk files.

    Runs the ``download_catalog`` management command, which skips the
    download if recent chunks already exist unless ``force`` is set.
    """
    call_command("download_catalog", force=force)


@celery_app.task(ignore_result=True)
def sync_catalog_task(skip_prices=False):
    """
    Sync pending catalog chunks into the database.

    Runs the ``sync_catalog`` management command, which holds a cache lock so
    overlapping schedules never sync the same chunks twice.
    """
    call_command("sync_catalog", skip_prices=skip_prices)


@celery_app.task(ignore_result=True)
def prune_catalog_chunks_task():
    call_command("prune_catalog_chunks")
