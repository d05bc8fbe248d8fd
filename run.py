# run.py
# Description: Entry point for the travel journal sync engine. Runs one sync pass, or keeps a
# sync session alive (timer + connectivity polling) with --watch.
#
# Imports
import argparse
import asyncio
import json
import sys
from pathlib import Path
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
project_dir = Path(__file__).parent.resolve()
sys.path.insert(0, str(project_dir))

from travel_journal import config
from travel_journal.DB.Journal_DB import JournalDB
from travel_journal.DB.Sync_State import SyncStateStore
from travel_journal.Logging_Config import configure_logging
from travel_journal.remote_api.client import RemoteStoreClient
from travel_journal.Sync.connectivity import AppLifecycleMonitor, HttpReachabilityMonitor
from travel_journal.Sync.Sync_Manager import SyncManager
from travel_journal.Sync.Sync_Session import SyncSession
#
#######################################################################################################################
#
# Functions:

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synchronize the local travel journal with the remote backend.")
    parser.add_argument("--config", type=Path, default=None,
                        help=f"Path to the TOML config file (default: {config.DEFAULT_CONFIG_PATH}).")
    parser.add_argument("--watch", action="store_true",
                        help="Keep running and sync periodically and on reconnect until interrupted.")
    parser.add_argument("--init-config", action="store_true",
                        help="Write the default config file if it does not exist, then exit.")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    settings = config.load_settings(args.config, force_reload=True)
    configure_logging(settings)

    try:
        remote_settings = config.get_remote_settings()
    except ValueError as e:
        logger.error(str(e))
        return 2

    db = JournalDB(config.get_db_path(), client_id=config.get_setting("database", "client_id", config.APP_CLIENT_ID))
    state_store = SyncStateStore(config.get_state_file_path())
    remote = RemoteStoreClient(
        remote_settings["url"],
        remote_settings["anon_key"],
        timeout=remote_settings["timeout_seconds"],
        state_store=state_store,
    )
    network = HttpReachabilityMonitor(
        config.get_setting("sync", "probe_url"),
        poll_interval=float(config.get_setting("sync", "connectivity_poll_seconds", 15.0)),
    )
    session = SyncSession(
        SyncManager(db, remote, state_store),
        network,
        app_state=AppLifecycleMonitor(),
        sync_interval=float(config.get_setting("sync", "interval_seconds")),
    )

    try:
        if args.watch:
            await session.initialize()
            network.start()
            logger.info("Watching for changes. Press Ctrl+C to stop.")
            await asyncio.Event().wait()
            return 0

        result = await session.sync_data()
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        return 0 if result.success else 1
    finally:
        await network.stop()
        await session.close()
        await remote.close()
        db.close_connection()


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.init_config:
        path = config.ensure_default_config(args.config)
        print(f"Config file: {path}")
        return 0
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted; sync session stopped.")
        return 130


if __name__ == "__main__":
    sys.exit(main())

#
# End of run.py
#######################################################################################################################
