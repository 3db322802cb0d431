# cli.py
import click
import logging
import time
from datetime import datetime, timezone

from botocore.exceptions import ClientError

from owner_transfer.adapters.scheduler import LocalScheduler
from owner_transfer.aws.utils import AWSClientManager, create_checkpoint_bucket
from owner_transfer.driver import build_driver
from owner_transfer.engine import SliceAction
from owner_transfer.errors import TransferError
from owner_transfer.settings import get_settings

# Configure logging
logger = logging.getLogger(__name__)


def _driver():
    try:
        return build_driver(get_settings())
    except TransferError as e:
        raise click.ClickException(str(e))


@click.group()
def cli():
    """Resumable ownership transfer over a remote file tree"""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  Deployment Mode: {settings.deployment_mode}")
    print(f"  Queue Key: {settings.queue_key}")
    print(f"  Root IDs: {', '.join(settings.root_id_list) or '(none)'}")
    print(f"  Current Owner: {settings.current_owner}")
    print(f"  New Owner: {settings.new_owner}")
    print(f"  Slice Budget: {settings.slice_budget_seconds}s")
    print(f"  Heartbeat: every {settings.heartbeat_interval} items, max {settings.max_heartbeats}")
    print(f"  Reschedule Delay: {settings.reschedule_delay_seconds}s")
    if settings.deployment_mode == "local-dev":
        print(f"  Storage Dir: {settings.storage_dir}")
        print(f"  Tree Manifest: {settings.manifest_path}")
    else:
        print(f"  AWS Region: {settings.aws_region}")
        print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
        print(f"  Checkpoint Bucket: {settings.checkpoint_bucket}")
        print(f"  Scheduler Target: {settings.scheduler_target_arn}")


@cli.command()
@click.option("--budget", type=float, default=None,
              help="Override the slice budget in seconds")
def run_slice(budget):
    """Run a single slice and checkpoint or finish"""
    driver = _driver()
    result = driver.run_slice(budget_seconds=budget)
    if result.already_complete:
        print(f"Transfer {driver.queue_key} is already complete")
        return
    print(f"Handled {result.handled} items, {result.remaining} left ({result.action.value})")


@cli.command()
@click.option("--max-slices", type=int, default=None,
              help="Stop after this many slices even if work remains")
def run(max_slices):
    """Run slices locally until the transfer completes"""
    settings = get_settings()
    if settings.deployment_mode != "local-dev":
        raise click.ClickException(
            "run drives the local scheduler; in AWS modes slices are invoked by EventBridge"
        )

    driver = _driver()
    scheduler = driver.scheduler
    slices = 0

    while True:
        if isinstance(scheduler, LocalScheduler):
            scheduler.clear(driver.queue_key)

        result = driver.run_slice()
        slices += 1
        print(f"Slice {slices}: handled {result.handled} items, {result.remaining} left")

        if result.action is SliceAction.COMPLETE:
            print(f"Transfer {driver.queue_key} complete after {slices} slice(s)")
            return
        if max_slices is not None and slices >= max_slices:
            print(f"Stopped after {slices} slice(s); run again to resume")
            return

        invocation = scheduler.pending(driver.queue_key) if isinstance(scheduler, LocalScheduler) else None
        if invocation is not None:
            wait = (invocation.due_at - datetime.now(timezone.utc)).total_seconds()
            if wait > 0:
                logger.info(f"Waiting {wait:.0f}s for the next slice")
                time.sleep(wait)


@cli.command()
def status():
    """Show the state of the configured transfer"""
    transfer = _driver().status()
    print(f"Transfer {transfer.queue_key}: {transfer.state.value}")
    print(f"  Remaining: {transfer.remaining}")
    print(f"  Slices: {transfer.slices_completed}")
    print(f"  Items handled: {transfer.items_handled}")
    print(f"  Owners changed: {transfer.owners_changed}")
    if transfer.updated_at:
        print(f"  Updated: {transfer.updated_at.isoformat()}")


@cli.command()
@click.argument("item_ids", nargs=-1)
@click.option("--append", is_flag=True,
              help="Push the items onto the existing queue instead of replacing it")
def seed(item_ids, append):
    """Seed the queue with ITEM_IDS (default: the configured roots)"""
    driver = _driver()
    if append:
        if not item_ids:
            raise click.UsageError("--append needs at least one item id")
        checkpoint = driver.enqueue(item_ids)
    else:
        checkpoint = driver.seed(item_ids or None)
    print(f"Queue {driver.queue_key} now holds {len(checkpoint.items)} item(s)")


@cli.command()
@click.confirmation_option(prompt="Delete the checkpoint and completion record?")
def reset():
    """Forget the configured transfer"""
    driver = _driver()
    driver.reset()
    print(f"Transfer {driver.queue_key} reset")


@cli.command()
def init_bucket():
    """Create the checkpoint bucket (AWS modes)"""
    settings = get_settings()
    if settings.deployment_mode == "local-dev":
        print(f"local-dev keeps checkpoints under {settings.storage_dir}; nothing to create")
        return

    s3_client = AWSClientManager(settings).get_s3_client()
    try:
        create_checkpoint_bucket(s3_client, settings.checkpoint_bucket, settings.aws_region)
    except ClientError as e:
        raise click.ClickException(f"Could not create bucket {settings.checkpoint_bucket}: {e}")
    print(f"Checkpoint bucket ready: {settings.checkpoint_bucket}")


def main():
    cli()


if __name__ == "__main__":
    main()
