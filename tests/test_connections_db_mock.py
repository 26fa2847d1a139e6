"""Tests for entry, project and connection database operations with mocked Supabase."""

from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from serendipity.core.errors import StoreWriteError


@pytest.fixture
def mock_supabase():
    """Fixture to mock Supabase client."""
    with patch("serendipity.db.connections.get_supabase") as mock_get_supabase:
        mock_client = MagicMock()
        mock_get_supabase.return_value = mock_client
        yield mock_client


class TestListConnectionsBetween:
    def test_empty_pairs_skip_query(self, mock_supabase):
        from serendipity.db.connections import list_connections_between

        assert list_connections_between([]) == []
        mock_supabase.table.assert_not_called()

    def test_filter_covers_both_directions(self, mock_supabase):
        from serendipity.db.connections import list_connections_between

        chain = mock_supabase.table.return_value.select.return_value.or_.return_value
        chain.execute.return_value = MagicMock(data=[{"source_entry_id": "b", "target_entry_id": "a"}])

        rows = list_connections_between([("a", "b")])

        assert rows == [{"source_entry_id": "b", "target_entry_id": "a"}]
        mock_supabase.table.assert_called_with("connections")
        predicate = mock_supabase.table.return_value.select.return_value.or_.call_args[0][0]
        assert predicate == (
            "and(source_entry_id.eq.a,target_entry_id.eq.b),"
            "and(source_entry_id.eq.b,target_entry_id.eq.a)"
        )


class TestListConnectionsTouching:
    def test_pages_until_short_page(self, mock_supabase):
        from serendipity.db.connections import PAGE_SIZE, list_connections_touching

        full_page = [{"source_entry_id": "a", "target_entry_id": f"x{i}"} for i in range(PAGE_SIZE)]
        last_page = [{"source_entry_id": "b", "target_entry_id": "y"}]
        order_mock = mock_supabase.table.return_value.select.return_value.or_.return_value.order
        range_mock = order_mock.return_value.range
        range_mock.return_value.execute.side_effect = [MagicMock(data=full_page), MagicMock(data=last_page)]

        rows = list_connections_touching(["a", "b"])

        assert len(rows) == PAGE_SIZE + 1
        assert [c[0] for c in range_mock.call_args_list] == [(0, PAGE_SIZE - 1), (PAGE_SIZE, 2 * PAGE_SIZE - 1)]
        assert order_mock.call_count == 2
        order_mock.assert_called_with("id")
        predicate = mock_supabase.table.return_value.select.return_value.or_.call_args[0][0]
        assert predicate == "source_entry_id.in.(a,b),target_entry_id.in.(a,b)"

    def test_no_ids(self, mock_supabase):
        from serendipity.db.connections import list_connections_touching

        assert list_connections_touching([]) == []


class TestInsertConnections:
    def test_single_batch_insert(self, mock_supabase):
        from serendipity.db.connections import insert_connections

        rows = [
            {"source_entry_id": "a", "target_entry_id": "b", "status": "pending"},
            {"source_entry_id": "a", "target_entry_id": "c", "status": "pending"},
        ]
        mock_supabase.table.return_value.insert.return_value.execute.return_value = MagicMock(
            data=[{"id": str(uuid4())}, {"id": str(uuid4())}]
        )

        assert insert_connections(rows) == 2
        mock_supabase.table.return_value.insert.assert_called_once_with(rows)

    def test_empty_rows_skip_insert(self, mock_supabase):
        from serendipity.db.connections import insert_connections

        assert insert_connections([]) == 0
        mock_supabase.table.assert_not_called()

    def test_failure_raises_store_write_error(self, mock_supabase):
        from serendipity.db.connections import insert_connections

        mock_supabase.table.return_value.insert.return_value.execute.side_effect = Exception("duplicate key")

        with pytest.raises(StoreWriteError):
            insert_connections([{"source_entry_id": "a", "target_entry_id": "b"}])


class TestListProjectConnections:
    def test_filters_by_project_and_status(self, mock_supabase):
        from serendipity.db.connections import list_project_connections

        project_id = uuid4()
        eq_project = mock_supabase.table.return_value.select.return_value.eq
        eq_status = eq_project.return_value.eq
        eq_status.return_value.order.return_value.limit.return_value.execute.return_value = MagicMock(
            data=[{"id": "c1", "status": "confirmed", "source": {"project_id": str(project_id)}}]
        )

        rows = list_project_connections(project_id, status="confirmed", limit=25)

        assert rows == [{"id": "c1", "status": "confirmed"}]
        eq_project.assert_called_with("source.project_id", str(project_id))
        eq_status.assert_called_with("status", "confirmed")
        eq_status.return_value.order.assert_called_with("created_at", desc=True)
        eq_status.return_value.order.return_value.limit.assert_called_with(25)


class TestEntriesAndProjects:
    def test_get_entry_returns_first_row(self):
        from serendipity.db.entries import get_entry

        with patch("serendipity.db.entries.get_supabase") as mock_get_supabase:
            client = MagicMock()
            mock_get_supabase.return_value = client
            chain = client.table.return_value.select.return_value.eq.return_value.limit.return_value
            chain.execute.return_value = MagicMock(data=[{"id": "e1"}])

            assert get_entry("e1") == {"id": "e1"}
            client.table.assert_called_with("entries")

    def test_list_project_entries_excludes_focus(self):
        from serendipity.db.entries import list_project_entries

        with patch("serendipity.db.entries.get_supabase") as mock_get_supabase:
            client = MagicMock()
            mock_get_supabase.return_value = client
            query = client.table.return_value.select.return_value.eq.return_value
            query.neq.return_value.order.return_value.limit.return_value.execute.return_value = MagicMock(
                data=[{"id": "e2"}]
            )

            rows = list_project_entries("p1", 30, exclude_entry_id="e1")

            assert rows == [{"id": "e2"}]
            query.neq.assert_called_with("id", "e1")
            query.neq.return_value.order.assert_called_with("created_at", desc=True)
            query.neq.return_value.order.return_value.limit.assert_called_with(30)

    def test_get_owned_project_none_when_not_owner(self):
        from serendipity.db.projects import get_owned_project

        with patch("serendipity.db.projects.get_supabase") as mock_get_supabase:
            client = MagicMock()
            mock_get_supabase.return_value = client
            chain = client.table.return_value.select.return_value.eq.return_value.eq.return_value
            chain.limit.return_value.execute.return_value = MagicMock(data=[])

            assert get_owned_project("p1", "user-2") is None
            chain.limit.assert_called_with(1)
            client.table.return_value.select.return_value.eq.return_value.eq.assert_called_with(
                "owner_id", "user-2"
            )


class TestSupabaseEntryStore:
    @pytest.mark.asyncio
    async def test_entries_validated_into_models(self):
        from serendipity.db.entry_store import SupabaseEntryStore

        rows = [{"id": uuid4(), "content": "pH 7.2", "entry_type": "measurement", "tags": None,
                 "project_id": "p1", "created_at": "2026-03-01T09:00:00+00:00"}]
        with patch("serendipity.db.entry_store.entries_db.list_project_entries", return_value=rows) as mock_list:
            entries = await SupabaseEntryStore().list_project_entries("p1", 30, exclude_entry_id="e1")

        mock_list.assert_called_once_with("p1", 30, "e1")
        assert entries[0].id == str(rows[0]["id"])
        assert entries[0].tags == []
        assert entries[0].entry_type.value == "measurement"

    @pytest.mark.asyncio
    async def test_missing_entry_is_none(self):
        from serendipity.db.entry_store import SupabaseEntryStore

        with patch("serendipity.db.entry_store.entries_db.get_entry", return_value=None):
            assert await SupabaseEntryStore().get_entry("missing") is None

    @pytest.mark.asyncio
    async def test_null_tag_elements_are_dropped(self):
        from serendipity.db.entry_store import SupabaseEntryStore

        rows = [{"id": "e1", "content": "Buffer swapped", "tags": ["pH", None, "buffer"], "project_id": "p1"}]
        with patch("serendipity.db.entry_store.entries_db.list_project_entries", return_value=rows):
            entries = await SupabaseEntryStore().list_project_entries("p1", 30)

        assert entries[0].tags == ["pH", "buffer"]
