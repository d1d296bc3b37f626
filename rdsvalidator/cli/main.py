"""
Main CLI entry point.

Restores a database from its latest snapshot (optionally behind an SSH
bastion), runs pre/post scripts against it, and tears everything down
again. Every option can also be set through an ``RV_`` environment
variable, e.g. ``RV_CLUSTER_ID``.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from .. import __version__
from ..config.settings import AppSettings, get_settings
from ..errors import EXIT_ERROR, EXIT_OK, EXIT_USAGE, ConfigurationError, RDSValidatorError
from ..logging_utils.log_manager import LogManager
from ..logging_utils.progress_tracker import ProgressTracker
from ..logging_utils.setup import configure_logging
from ..orchestration.orchestrator import Orchestrator
from ..orchestration.plan import ProvisioningPlan, RunConfig
from ..resources.aws import AWSClients
from ..resources.base import RunContext
from ..resources.listing import list_databases
from ..resources.releaser import Providers

logger = logging.getLogger(__name__)

_DIRECTORY = click.Path(exists=True, file_okay=False, path_type=Path)


async def _list(settings: AppSettings) -> int:
    clients = AWSClients(settings.cloud)
    inventory = await list_databases(clients.rds)
    click.echo(inventory.to_json())
    return EXIT_OK


async def _run(plan: ProvisioningPlan, settings: AppSettings) -> int:
    log_manager = LogManager()
    progress = ProgressTracker(log_manager)
    context = RunContext(
        settings=settings.provisioning, progress=progress.poll_attempt
    )

    providers = Providers.from_clients(context, AWSClients(settings.cloud))
    orchestrator = Orchestrator(plan, providers, context, log_manager, progress)
    try:
        return await orchestrator.run()
    finally:
        progress.close()


@click.command(context_settings={"auto_envvar_prefix": "RV"})
@click.option("--list", "list_mode", is_flag=True, help="List clusters and instances as JSON")
@click.option("--cluster-id", help="Restore the latest snapshot of this cluster")
@click.option("--instance-id", help="Restore the latest snapshot of this instance")
@click.option(
    "--instance-type",
    help="Instance class of the restored database [default: db.t3.medium]",
)
@click.option("--pre", "pre_dir", type=_DIRECTORY, help="Scripts to run before provisioning")
@click.option("--post", "post_dir", type=_DIRECTORY, help="Scripts to run against the database")
@click.option("--proxy", "proxy_host", help="Existing SSH host to tunnel through")
@click.option(
    "--proxy-key",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Private key for --proxy",
)
@click.option("--proxy-create", is_flag=True, help="Create a temporary bastion to tunnel through")
@click.option("--proxy-vpc", help="VPC for the temporary bastion")
@click.option("--proxy-subnet", help="Public subnet for the temporary bastion")
@click.option("--proxy-user", help="SSH user on the proxy host [default: ubuntu]")
@click.option(
    "--local-port",
    type=click.IntRange(1, 65535),
    help="Local tunnel port [default: database port + 10000]",
)
@click.option(
    "--poll-timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Give up waiting on a resource after this many seconds [default: wait forever]",
)
@click.option("--no-wait", is_flag=True, help="Tear down without waiting for Enter")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(__version__, prog_name="rdsvalidator")
def cli(
    list_mode: bool,
    cluster_id: Optional[str],
    instance_id: Optional[str],
    instance_type: Optional[str],
    pre_dir: Optional[Path],
    post_dir: Optional[Path],
    proxy_host: Optional[str],
    proxy_key: Optional[Path],
    proxy_create: bool,
    proxy_vpc: Optional[str],
    proxy_subnet: Optional[str],
    proxy_user: Optional[str],
    local_port: Optional[int],
    poll_timeout: Optional[float],
    no_wait: bool,
    verbose: bool,
):
    """rdsvalidator - validate RDS snapshots by restoring and testing them.

    Examples:
      rdsvalidator --list
      rdsvalidator --instance-id orders --post ./checks
      rdsvalidator --cluster-id billing --proxy-create \\
          --proxy-vpc vpc-0abc --proxy-subnet subnet-0def --post ./checks
    """
    settings = get_settings()
    log_file = configure_logging(settings.monitoring, verbose=verbose)
    if log_file is not None:
        logger.debug(f"Writing logs to {log_file}")

    if list_mode:
        if cluster_id or instance_id:
            raise click.UsageError(
                "--list cannot be combined with --cluster-id or --instance-id"
            )
        try:
            sys.exit(asyncio.run(_list(settings)))
        except RDSValidatorError as e:
            click.echo(f"❌ Error: {e}", err=True)
            sys.exit(EXIT_ERROR)

    if poll_timeout is not None:
        settings = settings.model_copy(
            update={
                "provisioning": settings.provisioning.model_copy(
                    update={"poll_timeout": poll_timeout}
                )
            }
        )

    try:
        config = RunConfig(
            cluster_id=cluster_id,
            instance_id=instance_id,
            db_instance_class=instance_type
            or settings.provisioning.default_db_instance_class,
            pre_dir=pre_dir,
            post_dir=post_dir,
            proxy_host=proxy_host,
            proxy_key=proxy_key,
            proxy_create=proxy_create,
            proxy_vpc=proxy_vpc,
            proxy_subnet=proxy_subnet,
            proxy_user=proxy_user or settings.provisioning.proxy_user,
            local_port=local_port,
            poll_timeout=poll_timeout,
            wait_for_confirmation=not no_wait,
        )
        plan = ProvisioningPlan.from_config(config)
    except ConfigurationError as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(EXIT_USAGE)

    try:
        status = asyncio.run(_run(plan, settings))
    except ConfigurationError as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(EXIT_USAGE)

    sys.exit(status)


if __name__ == "__main__":
    cli()
