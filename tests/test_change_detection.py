"""
tests/test_change_detection.py

Hash de conteúdo e escrita condicional (custo 1 para novo/alterado, 0 para
conteúdo idêntico).
"""

from datetime import datetime, timezone

from change_detection import batch_write_if_changed, compute_content_hash, write_if_changed
from schemas import CaseStatus, Movement
from storage import CASES_COLLECTION
from tests.helpers import TJMG_ID, TJSP_ID, make_case

# =============================================================================
# Hash
# =============================================================================


class TestContentHash:
    def test_sync_bookkeeping_does_not_change_hash(self) -> None:
        a = make_case(sync_status="synced", synced_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        b = make_case(sync_status="pending", synced_at=datetime(2024, 6, 1, tzinfo=timezone.utc))
        assert compute_content_hash(a) == compute_content_hash(b)

    def test_status_change_changes_hash(self) -> None:
        a = make_case()
        b = make_case(status=CaseStatus.CONCLUDED)
        assert compute_content_hash(a) != compute_content_hash(b)

    def test_new_movement_changes_hash(self) -> None:
        a = make_case()
        b = make_case(last_movement=Movement(name="Sentença"))
        assert compute_content_hash(a) != compute_content_hash(b)

    def test_hash_is_sha256_hex(self) -> None:
        digest = compute_content_hash(make_case())
        assert len(digest) == 64
        int(digest, 16)

# =============================================================================
# write_if_changed
# =============================================================================


class TestWriteIfChanged:
    def test_same_content_twice_costs_one_then_zero(self, store) -> None:
        case = make_case()

        first = write_if_changed(store, case)
        second = write_if_changed(store, make_case(synced_at=datetime(2030, 1, 1, tzinfo=timezone.utc)))

        assert (first.cost, first.reason) == (1, "new")
        assert (second.cost, second.reason, second.written) == (0, "no_changes", False)
        assert store.writes_to(CASES_COLLECTION) == 1

    def test_changed_content_is_updated(self, store) -> None:
        write_if_changed(store, make_case())
        result = write_if_changed(store, make_case(status=CaseStatus.ARCHIVED))

        assert (result.cost, result.reason) == (1, "updated")
        stored = store.get(CASES_COLLECTION, TJSP_ID).fields
        assert stored["status"] == "archived"

    def test_stored_document_carries_hash(self, store) -> None:
        case = make_case()
        write_if_changed(store, case)

        stored = store.get(CASES_COLLECTION, TJSP_ID).fields
        assert stored["content_hash"] == compute_content_hash(case)
        assert stored["process_id"] == TJSP_ID
        assert stored["sync_status"] == "synced"

    def test_storage_read_retried_through_executor(self, store, executor, sleeper) -> None:
        store.get_errors = [ConnectionError("instável")]

        result = write_if_changed(store, make_case(), executor=executor)

        assert result.reason == "new"
        assert sleeper.calls == [1.0]

# =============================================================================
# batch_write_if_changed
# =============================================================================


class TestBatchWrite:
    def test_failures_are_isolated_per_item(self, store) -> None:
        write_if_changed(store, make_case(process_id="1" * 20))
        store.fail_writes_for.add(TJMG_ID)

        result = batch_write_if_changed(store, [
            make_case(process_id="1" * 20),
            make_case(process_id=TJMG_ID),
            make_case(process_id=TJSP_ID),
        ])

        assert result.total_processed == 3
        assert result.write_cost == 1
        assert result.new == 1
        assert result.skipped == 1
        assert len(result.failures) == 1
        assert result.failures[0].process_id == TJMG_ID
        assert result.failures[0].error.startswith("RuntimeError")

    def test_new_and_updated_are_counted_separately(self, store) -> None:
        write_if_changed(store, make_case(process_id=TJSP_ID))

        result = batch_write_if_changed(store, [
            make_case(process_id=TJSP_ID, status=CaseStatus.CONCLUDED),
            make_case(process_id=TJMG_ID),
        ])

        assert (result.new, result.updated, result.write_cost) == (1, 1, 2)

    def test_write_limit_defers_remaining_changes(self, store) -> None:
        cases = [make_case(process_id=str(i) * 20) for i in range(1, 4)]

        result = batch_write_if_changed(store, cases, write_limit=2)

        assert result.write_cost == 2
        assert result.deferred == 1
        assert store.writes_to(CASES_COLLECTION) == 2

    def test_unchanged_cases_do_not_consume_limit(self, store) -> None:
        write_if_changed(store, make_case(process_id="1" * 20))

        result = batch_write_if_changed(
            store, [make_case(process_id="1" * 20), make_case(process_id="2" * 20)], write_limit=1
        )

        assert (result.skipped, result.write_cost, result.deferred) == (1, 1, 0)
