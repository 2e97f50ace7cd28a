"""
This is the main entrypoint command for running the controller
"""
# Standard
from typing import List, Optional
import argparse
import os
import signal
import sys
import threading

# Third Party
import yaml

# First Party
import alog

# Local
from .. import config
from ..controller import JobSyncController
from ..deploy_manager import (
    DeployManagerBase,
    DryRunDeployManager,
    OpenshiftDeployManager,
)
from ..exceptions import ClusterError, JobSyncFatalError, assert_config

log = alog.use_channel("MAIN")


class RunControllerCmd:
    __doc__ = __doc__

    ## Interface ##

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        """Add the "run" subcommand with its runtime arguments"""
        parser = subparsers.add_parser("run", help=__doc__)
        runtime_args = parser.add_argument_group("Runtime Configuration")
        runtime_args.add_argument(
            "--resource_dir",
            "-r",
            default=None,
            help=(
                "Path to a directory of yaml files to load into an in-memory "
                "cluster instead of connecting to a live one"
            ),
        )
        return parser

    def cmd(self, args: argparse.Namespace):
        """Start the controller and block until a stop signal arrives. Setup
        failures exit the process with status 1.
        """
        assert args.resource_dir is None or os.path.isdir(
            args.resource_dir
        ), "--resource_dir must point to a valid directory"

        # Everything that can keep the controller from starting is fatal
        try:
            assert_config(
                config.namespace, "Namespace is not defined or empty. Cannot proceed"
            )
            deploy_manager = self._setup_deploy_manager(args.resource_dir)
            self._check_server_version(deploy_manager)
        except JobSyncFatalError as err:
            log.error("%s", err)
            sys.exit(1)

        if config.dry_run:
            log.info("Performing dry run...")
        log.info("Configured namespace: '%s'", config.namespace)

        controller = JobSyncController(
            deploy_manager=deploy_manager,
            namespace=config.namespace,
            dry_run=config.dry_run,
            deployment_api_version=config.deployment_api_version,
            cron_job_api_version=config.cron_job_api_version,
        )

        # Register the signal handlers to stop the controller
        stop_requested = threading.Event()

        def do_stop(*_, **__):
            stop_requested.set()

        signal.signal(signal.SIGINT, do_stop)
        signal.signal(signal.SIGTERM, do_stop)

        log.info("Starting controller...")
        controller.start(
            retry_count=config.watch_retry_count,
            retry_delay=config.watch_retry_delay,
        )

        # Wait for a signal, then let the pass in flight finish
        stop_requested.wait()
        log.info("Shutting down...")
        controller.stop()
        controller.wait()
        log.info("SHUTTING DOWN")

    ## Impl ##

    @staticmethod
    def _setup_deploy_manager(resource_dir: Optional[str]) -> DeployManagerBase:
        if resource_dir is not None:
            log.info("Running against an in-memory cluster from [%s]", resource_dir)
            return DryRunDeployManager(
                resources=RunControllerCmd._parse_resource_dir(resource_dir)
            )
        return OpenshiftDeployManager(run_outside_cluster=config.run_outside_cluster)

    @staticmethod
    def _check_server_version(deploy_manager: DeployManagerBase):
        """Make a first call against the cluster so that bad credentials stop
        the process before the watch starts
        """
        try:
            version = deploy_manager.server_version()
        except JobSyncFatalError:
            raise
        except Exception as err:  # pylint: disable=broad-except
            raise ClusterError(f"Failed to retrieve server version: {err}") from err
        log.info("Successfully constructed k8s client for server %s", version)

    @staticmethod
    def _parse_resource_dir(resource_dir: str) -> List[dict]:
        """Parse all yaml files found in the given directory"""
        all_resources = []
        for fname in sorted(os.listdir(resource_dir)):
            if fname.endswith(".yaml") or fname.endswith(".yml"):
                resource_path = os.path.join(resource_dir, fname)
                log.debug3("Reading resource file [%s]", resource_path)
                with open(resource_path, encoding="utf-8") as handle:
                    all_resources.extend(
                        resource for resource in yaml.safe_load_all(handle) if resource
                    )
        return all_resources
