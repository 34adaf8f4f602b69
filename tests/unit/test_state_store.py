"""
ConnectionStateStore / ConnectionSnapshot のユニットテスト
"""

import unittest

from deploylink.core.state import (
    ERROR_FETCHING_INFO_KEY,
    LOADING_KEY,
    AccountSlice,
    ConnectionStateStore,
    RecordSlice,
)
from deploylink.errors import create_fetch_error
from deploylink.models import (
    AccountIdentity,
    ConnectionRecord,
    DisconnectState,
    FetchStatus,
    ProviderIdentity,
)


class TestConnectionStateStore(unittest.TestCase):

    def setUp(self):
        self.store = ConnectionStateStore("/sites/app")

    def test_initial_snapshot(self):
        snapshot = self.store.snapshot()
        self.assertEqual(snapshot.target_id, "/sites/app")
        self.assertEqual(snapshot.account.status, FetchStatus.LOADING)
        self.assertEqual(snapshot.record.status, FetchStatus.LOADING)
        self.assertEqual(snapshot.disconnect_state, DisconnectState.CONNECTED)
        self.assertFalse(snapshot.is_busy)

    def test_snapshots_are_immutable_values(self):
        before = self.store.snapshot()
        self.store.set_busy("disconnect")
        after = self.store.snapshot()
        self.assertIsNone(before.busy_operation)
        self.assertEqual(after.busy_operation, "disconnect")
        with self.assertRaises(Exception):
            after.busy_operation = None  # type: ignore[misc]

    def test_subscribe_and_unsubscribe(self):
        seen = []
        unsubscribe = self.store.subscribe(seen.append)
        self.store.set_disconnect_state(DisconnectState.DISCONNECTING)
        unsubscribe()
        unsubscribe()
        self.store.set_disconnect_state(DisconnectState.DISCONNECTED)
        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0].disconnect_state, DisconnectState.DISCONNECTING)

    def test_failing_listener_does_not_block_others(self):
        seen = []

        def broken(_snapshot):
            raise RuntimeError("listener bug")

        self.store.subscribe(broken)
        self.store.subscribe(seen.append)
        with self.assertLogs("deploylink.core.state", level="ERROR"):
            self.store.set_busy("authorize")
        self.assertEqual(len(seen), 1)

    def test_replace_record(self):
        record = ConnectionRecord(ProviderIdentity.GITHUB, "https://github.com/org/repo")
        self.store.replace_record(record)
        snapshot = self.store.snapshot()
        self.assertEqual(snapshot.record.status, FetchStatus.FRESH)
        self.assertIs(snapshot.record.record, record)
        self.assertEqual(snapshot.record.folder, "/repo")

    def test_record_loading_keeps_previous_folder(self):
        self.store.replace_record(ConnectionRecord(ProviderIdentity.DROPBOX, "dropbox/apps/site"))
        self.store.mark_record_loading()
        snapshot = self.store.snapshot()
        self.assertEqual(snapshot.record.status, FetchStatus.LOADING)
        self.assertEqual(snapshot.folder_display(), "/site")
        self.assertEqual(snapshot.folder_display(cached_folder="/cached"), "/cached")

    def test_account_loading_keeps_previous_name(self):
        self.store.set_account(
            AccountSlice(status=FetchStatus.FRESH, identity=AccountIdentity(ProviderIdentity.DROPBOX, "ada"))
        )
        self.store.mark_account_loading()
        self.assertEqual(self.store.snapshot().signed_in_as().text, "ada")


class TestSnapshotViews(unittest.TestCase):

    def setUp(self):
        self.store = ConnectionStateStore("/sites/app")

    def test_signed_in_as_loading_without_cache(self):
        view = self.store.snapshot().signed_in_as()
        self.assertEqual(view.text, LOADING_KEY)
        self.assertFalse(view.show_not_authorized_banner)

    def test_signed_in_as_loading_with_form_value(self):
        self.assertEqual(self.store.snapshot().signed_in_as(cached_name="grace").text, "grace")

    def test_signed_in_as_fresh(self):
        self.store.set_account(
            AccountSlice(status=FetchStatus.FRESH, identity=AccountIdentity(ProviderIdentity.GITHUB, "octo"))
        )
        view = self.store.snapshot().signed_in_as(cached_name="stale")
        self.assertEqual(view.text, "octo")
        self.assertFalse(view.show_authorize_action)

    def test_not_authorized_banner(self):
        self.store.set_account(
            AccountSlice(status=FetchStatus.ERROR, needs_authorization=True, error=create_fetch_error("x"))
        )
        snapshot = self.store.snapshot()
        view = snapshot.signed_in_as()
        self.assertTrue(snapshot.needs_authorization)
        self.assertIsNone(view.text)
        self.assertTrue(view.show_not_authorized_banner)
        self.assertTrue(view.show_authorize_action)

    def test_folder_display_states(self):
        self.assertEqual(self.store.snapshot().folder_display(), LOADING_KEY)
        self.store.set_record(RecordSlice(status=FetchStatus.ERROR, error=create_fetch_error("x")))
        self.assertEqual(self.store.snapshot().folder_display(), ERROR_FETCHING_INFO_KEY)
        self.store.replace_record(ConnectionRecord(ProviderIdentity.GITHUB, "repo-only"))
        self.assertEqual(self.store.snapshot().folder_display(), "")


if __name__ == "__main__":
    unittest.main()
