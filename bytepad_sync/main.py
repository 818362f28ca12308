"""Bytepad Sync - command line entry point."""

import argparse
import json
import logging
import signal
import sys
import threading
from typing import Optional

from . import __version__
from .auth import KeychainManager
from .config import Config, setup_logging
from .sync import (
    GistClient,
    LocalCollections,
    SyncCoordinator,
    SyncEngine,
    SyncResult,
)
from .sync.collections import SOURCE_REMOTE

logger = logging.getLogger(__name__)


class BytepadSyncApp:
    """Wires config, local collections, the Gist client and the schedulers."""

    def __init__(
        self,
        config: Optional[Config] = None,
        keychain: Optional[KeychainManager] = None,
        client: Optional[GistClient] = None,
        coordinator: Optional[SyncCoordinator] = None,
    ):
        self.config = config or Config.load()
        self.keychain = keychain or KeychainManager()
        if not self.config.gist.credential:
            self.config.gist.credential = self.keychain.load_token()

        self.collections = LocalCollections.load(self.config.data_path)
        self.client = client or GistClient(api_url=self.config.api_url)
        self.engine = SyncEngine(
            client=self.client,
            collections=self.collections,
            settings=self.config.gist,
            on_status_changed=self._persist_status,
        )
        self.coordinator = coordinator or SyncCoordinator(self.engine)
        self.collections.add_listener(self._on_collections_changed)
        self._shutdown_event = threading.Event()

    def configure(
        self,
        token: Optional[str] = None,
        gist_id: Optional[str] = None,
        auto_sync: Optional[bool] = None,
        interval: Optional[int] = None,
        enabled: Optional[bool] = None,
    ) -> list[str]:
        """Update sync settings and persist them. Returns the changed keys."""
        gist = self.config.gist
        changed = []
        if token:
            gist.credential = token.strip()
            self.keychain.store_token(gist.credential)
            changed.append("token")
        if gist_id:
            gist.remote_id = gist_id.strip()
            changed.append("gist_id")
        if auto_sync is not None:
            gist.auto_sync = auto_sync
            changed.append("auto_sync")
        if interval is not None:
            gist.sync_interval_minutes = max(1, interval)
            changed.append("interval")
        if enabled is not None:
            gist.enabled = enabled
            changed.append("enabled")
        if changed:
            self.config.save()
        return changed

    def validate(self) -> dict:
        gist = self.config.gist
        token_valid = bool(gist.credential) and self.client.validate_credential(
            gist.credential
        )
        gist_accessible = (
            token_valid
            and bool(gist.remote_id)
            and self.client.validate_remote_id(gist.credential, gist.remote_id)
        )
        return {"token_valid": token_valid, "gist_accessible": gist_accessible}

    def run(self) -> None:
        """Sync on the configured interval and after local changes until signalled."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.coordinator.attach(self.collections)
        if not self.coordinator.start_auto_sync():
            logger.info("Auto-sync is off; only local changes will trigger a sync")
        logger.info(f"Bytepad Sync {__version__} running")
        self._shutdown_event.wait()
        self.shutdown()

    def shutdown(self) -> None:
        self.coordinator.detach(self.collections)
        self.coordinator.shutdown()
        self.client.close()
        logger.info("Bytepad Sync stopped")

    def _signal_handler(self, signum, frame) -> None:
        logger.info(f"Received signal {signum}, shutting down")
        self._shutdown_event.set()

    def _persist_status(self, _settings) -> None:
        self.config.save()

    def _on_collections_changed(self, changed: list[str], source: str) -> None:
        self.collections.save(self.config.data_path)
        if source == SOURCE_REMOTE:
            logger.info(f"Local data updated from Gist: {', '.join(changed)}")


def _print_result(result: SyncResult) -> int:
    print(result.message)
    for warning in result.warnings:
        print(f"  warning: {warning}")
    if result.applied:
        print(f"  applied: {', '.join(result.applied)}")
    return 0 if result.success else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bytepad-sync",
        description="Synchronize Bytepad data with a GitHub Gist.",
    )
    parser.add_argument("--debug", action="store_true", help="verbose logging")
    parser.add_argument("--version", action="version", version=__version__)
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="show sync configuration and last result")
    sub.add_parser("validate", help="check the GitHub token and Gist access")

    configure = sub.add_parser("configure", help="update sync settings")
    configure.add_argument("--token", help="GitHub token with gist scope")
    configure.add_argument("--gist-id", help="existing Gist id")
    configure.add_argument("--auto-sync", dest="auto_sync", action="store_true", default=None)
    configure.add_argument("--no-auto-sync", dest="auto_sync", action="store_false")
    configure.add_argument("--interval", type=int, help="auto-sync interval in minutes")
    configure.add_argument("--enable", dest="enabled", action="store_true", default=None)
    configure.add_argument("--disable", dest="enabled", action="store_false")

    create = sub.add_parser("create", help="create a new Gist from local data")
    create.add_argument("--description", default="Bytepad Data")

    sub.add_parser("sync", help="pull if the Gist is newer, otherwise push")

    push = sub.add_parser("push", help="push local data to the Gist")
    push.add_argument("--force", action="store_true", help="skip data-loss checks")

    pull = sub.add_parser("pull", help="pull data from the Gist")
    pull.add_argument("--force", action="store_true", help="skip data-loss checks")

    sub.add_parser("export", help="print the local sync document as JSON")
    sub.add_parser("run", help="keep syncing in the background until interrupted")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = Config.load()
    setup_logging(args.debug or config.debug_mode)

    app = BytepadSyncApp(config=config)
    engine = app.engine

    if args.command == "status":
        print(json.dumps(engine.status(), indent=2))
        return 0
    if args.command == "validate":
        checks = app.validate()
        print(json.dumps(checks, indent=2))
        return 0 if all(checks.values()) else 1
    if args.command == "configure":
        changed = app.configure(
            token=args.token,
            gist_id=args.gist_id,
            auto_sync=args.auto_sync,
            interval=args.interval,
            enabled=args.enabled,
        )
        print(f"Updated: {', '.join(changed)}" if changed else "Nothing to update")
        return 0 if changed else 1
    if args.command == "create":
        return _print_result(engine.create_remote(args.description))
    if args.command == "sync":
        return _print_result(engine.sync())
    if args.command == "push":
        return _print_result(engine.force_push() if args.force else engine.push())
    if args.command == "pull":
        return _print_result(engine.force_pull() if args.force else engine.pull())
    if args.command == "export":
        print(json.dumps(engine.builder.build().to_dict(), indent=2))
        return 0
    if args.command == "run":
        app.run()
        return 0
    return 2


if __name__ == "__main__":
    sys.exit(main())
