"""
TaskSynchronizer: thin orchestrator that delegates to sync submodules.
"""

import logging

from gtasks_ical_sync.db import StateDatabase
from gtasks_ical_sync.gtasks_client import GoogleTasksClient
from gtasks_ical_sync.gtasks_client import ipv4_only
from gtasks_ical_sync.models import Authority
from gtasks_ical_sync.models import ReconcileResult
from gtasks_ical_sync.models import SyncConfig
from gtasks_ical_sync.models import SyncStats
from gtasks_ical_sync.sync.actions import LocalWorkingSet
from gtasks_ical_sync.sync.actions import prune_stale_records
from gtasks_ical_sync.sync.reconcile import reconcile
from gtasks_ical_sync.sync.to_local import run_one_way_to_local
from gtasks_ical_sync.sync.to_remote import run_one_way_to_remote
from gtasks_ical_sync.sync.two_way import run_two_way
from gtasks_ical_sync.sync.utils import filter_scope
from gtasks_ical_sync.sync.utils import split_by_list

_PREFER = {
    "both": None,
    "to-local": Authority.REMOTE,
    "to-remote": Authority.LOCAL,
}


class TaskSynchronizer:
    """Main synchronization engine.

    ``client`` and ``store`` default to the Google Tasks API and the
    iCalendar files named in the config; tests pass in fakes.
    """

    def __init__(self, config: SyncConfig, client=None, store=None):
        self.config = config
        self.client = client
        if store is None:
            from gtasks_ical_sync.ical_store import IcalTodoStore

            store = IcalTodoStore(config.local_path)
        self.store = store
        self.logger = logging.getLogger(__name__)
        self.stats = SyncStats()
        self.result: ReconcileResult | None = None

    def run(self) -> SyncStats:
        """Execute the synchronization process."""
        with ipv4_only(self.config.ipv4_only):
            return self._run()

    def _run(self) -> SyncStats:
        if self.client is None:
            self.logger.info("Connecting to Google Tasks...")
            self.client = GoogleTasksClient.connect(
                self.config.client_secrets_file,
                self.config.token_file,
                retries=self.config.retries,
                timeout=self.config.timeout,
            )

        tasklist = self.client.find_task_list(self.config.listname)
        self.logger.info(f"Using task list '{tasklist.title}' ({tasklist.id})")

        # Both sets are complete before anything is classified or written.
        self.logger.info("Fetching Google Tasks...")
        remote_tasks = self.client.fetch_all_remote_tasks(tasklist.id)
        self.logger.info(f"Loading local todos from {self.config.local_path}...")
        local_todos = self.store.load()

        with StateDatabase(self.config.state_db_path, tasklist.id) as state_db:
            records = state_db.get_all_records()
            list_todos, _ = split_by_list(local_todos, tasklist.id, remote_tasks, records)
            scoped_remote, scoped_local = filter_scope(
                remote_tasks, list_todos, self.config.task_ids, records
            )
            self.result = reconcile(
                scoped_remote,
                scoped_local,
                records,
                prefer=_PREFER[self.config.sync_direction],
            )

            local_set = LocalWorkingSet(local_todos)
            direction = self.config.sync_direction
            if direction == "both":
                run_two_way(
                    self.config, self.stats, self.logger, self.client,
                    local_set, state_db, self.result, records,
                )
            elif direction == "to-local":
                run_one_way_to_local(
                    self.config, self.stats, self.logger,
                    local_set, state_db, self.result, records,
                )
            elif direction == "to-remote":
                run_one_way_to_remote(
                    self.config, self.stats, self.logger, self.client,
                    local_set, state_db, self.result, records,
                )

            if not self.config.task_ids:
                prune_stale_records(
                    self.config, self.logger, state_db, records, remote_tasks, local_set.todos
                )

            if not self.config.dry_run:
                if local_set.changed:
                    self.logger.info(f"Writing local todos to {self.config.local_path}...")
                    self.store.save(local_set.todos, local_set.removed)
                state_db.commit()

        return self.stats
