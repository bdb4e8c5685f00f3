"""
Accept AirPlay Requests - background agent CLI
==============================================

Watches Notification Center and accepts incoming AirPlay requests.

Usage:
    accept-airplay [options]

Options:
    --once           Run a single scan pass and exit
    --dump           Print the Notification Center AX tree as JSON and exit
    --no-service     Do not register the LaunchAgent
    --unregister     Remove the LaunchAgent and exit
    --keep-others    Do not terminate other running instances
    -v, --verbose    Debug logging

Environment variables prefixed with AAR_ tune the same settings (see config.py).
"""

import argparse
import asyncio
import json
import logging
import signal
import sys

from accept_airplay import __version__
from accept_airplay.config import AgentConfig, ConfigError
from accept_airplay.gates import GateResult, PermissionGate, ServiceManager
from accept_airplay.instances import terminate_other_instances
from accept_airplay.scanner import NotificationsScanner, describe_tree
from accept_airplay.supervisor import PollSupervisor

logger = logging.getLogger("accept_airplay")

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def configure_logging(level):
    logging.basicConfig(level=level, format=LOG_FORMAT)


class AgentCLI:
    """CLI host for the AirPlay agent."""

    def __init__(self, environ=None):
        self.environ = environ

    def build_parser(self):
        parser = argparse.ArgumentParser(
            prog="accept-airplay",
            description="Automatically accept AirPlay requests shown by Notification Center.",
        )
        parser.add_argument("--once", action="store_true", help="run a single scan pass and exit")
        parser.add_argument("--dump", action="store_true", help="print the notification AX tree as JSON")
        parser.add_argument("--no-service", action="store_true", help="do not register the LaunchAgent")
        parser.add_argument("--unregister", action="store_true", help="remove the LaunchAgent and exit")
        parser.add_argument("--keep-others", action="store_true", help="leave other running instances alone")
        parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
        parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
        return parser

    def load_config(self, args) -> AgentConfig:
        config = AgentConfig.from_env(self.environ)
        return config.with_overrides(
            register_service=False if args.no_service else None,
            log_level="DEBUG" if args.verbose else None,
        )

    # ---------------- Wiring ----------------

    def root_provider(self, config):
        from accept_airplay.ax_bridge import notification_center_root
        return lambda: notification_center_root(config.notification_center_bundle_id)

    def service_manager(self, config):
        return ServiceManager(label=config.service_label, enabled=config.register_service)

    def build_supervisor(self, config, on_terminate):
        scanner = NotificationsScanner(self.root_provider(config), max_depth=config.max_scan_depth)
        return PollSupervisor(
            scan=scanner.scan_for_airplay_alerts,
            service_gate=self.service_manager(config),
            permission_gate=PermissionGate(max_attempts=config.max_permission_attempts),
            on_terminate=on_terminate,
            healthy_interval=config.healthy_interval,
            retry_interval=config.retry_interval,
            tolerance=config.interval_tolerance,
            niceness=config.niceness,
        )

    # ---------------- Commands ----------------

    async def serve(self, config):
        done = asyncio.Event()
        supervisor = self.build_supervisor(config, on_terminate=done.set)
        stopping = set()

        def _request_stop(signame):
            logger.info("received %s", signame)
            task = asyncio.ensure_future(supervisor.stop())
            stopping.add(task)
            task.add_done_callback(stopping.discard)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop, sig.name)

        supervisor.start()
        await done.wait()
        if stopping:
            await asyncio.gather(*stopping)
        logger.info("terminated")
        return 0

    def run_once(self, config):
        gate = PermissionGate()
        if gate.ensure_accessibility_permission(is_retry=False) is not GateResult.SUCCESS:
            print("[AX] This process is not trusted. Enable Accessibility permissions and rerun.")
            return 1
        NotificationsScanner(self.root_provider(config), max_depth=config.max_scan_depth).scan_for_airplay_alerts()
        return 0

    def dump(self, config):
        root = self.root_provider(config)()
        if root is None:
            print("No Notification Center window is showing.")
            return 1
        print(json.dumps(describe_tree(root), ensure_ascii=False, indent=2))
        return 0

    def run(self, argv):
        args = self.build_parser().parse_args(argv)
        try:
            config = self.load_config(args)
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

        configure_logging(config.log_level)

        if args.unregister:
            return 0 if self.service_manager(config).unregister() else 1
        if args.dump:
            return self.dump(config)
        if args.once:
            return self.run_once(config)

        if not args.keep_others:
            terminate_other_instances()
        return asyncio.run(self.serve(config))


def main(argv=None):
    """Entry point."""
    cli = AgentCLI()
    try:
        code = cli.run(sys.argv[1:] if argv is None else argv)
    except KeyboardInterrupt:
        print("\n[INTERRUPTED] Cancelled by user")
        code = 1
    except Exception:
        logger.exception("unexpected error")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
