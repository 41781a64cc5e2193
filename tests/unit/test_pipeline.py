"""
Unit tests for the ETL pipeline orchestrator, run against an in-memory store.
"""

import pytest

from src.core.config import PipelineOptions
from src.core.errors import DataDirectoryNotFoundError, StoreConnectionError
from src.core.models import User
from src.etl import pipeline as pipeline_module
from src.etl.deduplicator import Deduplicator
from src.etl.pipeline import ETLPipeline, PipelineState
from src.etl.transformer import UserTransformer
from src.observability.metrics import PipelineMetrics


def _options(data_dir, **kwargs) -> PipelineOptions:
    return PipelineOptions(data_dir=str(data_dir), **kwargs)


class TestPipelineRun:
    """Tests for ETLPipeline.run"""

    def test_loads_clean_and_messy_records(self, memory_store, write_file, data_dir, make_raw_user):
        """Test a mixed directory is counted and loaded"""
        write_file("01.json", make_raw_user())
        write_file("02.json", {"user_id": "u2", "name": "Messy"})
        write_file("03.json", "{broken")
        write_file("04.json", [1, 2, 3])

        pipeline = ETLPipeline(memory_store)
        stats = pipeline.run(_options(data_dir))

        assert stats.total_files == 4
        assert stats.unparsable_files == 1
        assert stats.processed_files == 2
        assert stats.validation_errors == 1
        assert stats.failed_records == 1
        assert stats.clean_records == 1
        assert stats.messy_records == 1
        assert stats.successful_records == 2
        assert stats.unique_users == 2
        assert stats.end_time is not None
        assert stats.duration_ms >= 0
        assert sorted(memory_store.users) == ["u1", "u2"]
        assert pipeline.state == PipelineState.DONE

    def test_worked_example_is_persisted(self, memory_store, write_file, data_dir, make_raw_user):
        write_file("u1.json", make_raw_user())

        ETLPipeline(memory_store).run(_options(data_dir))

        user = memory_store.users["u1"]
        assert user.email == "jane@example.com"
        assert [h.key for h in user.social_handles] == [("instagram", "foo")]
        assert user.total_engagement == 13
        assert user.total_sales == 50
        assert memory_store.program_stats["p1"].user_count == 1

    def test_duplicates_in_batch_are_merged(self, memory_store, write_file, data_dir):
        """Test equal-score duplicates in one batch become one user"""
        write_file("a.json", {"user_id": "u1", "name": "Jane"})
        write_file("b.json", {"user_id": "u1", "email": "jane@example.com"})

        stats = ETLPipeline(memory_store).run(_options(data_dir))

        assert stats.duplicates_merged == 1
        assert stats.unique_users == 1
        user = memory_store.users["u1"]
        assert (user.name, user.email) == ("Jane", "jane@example.com")

    def test_id_seen_in_earlier_batch_is_skipped(self, memory_store, write_file, data_dir):
        """Test a later batch never overwrites a user loaded earlier in the run"""
        write_file("a.json", {"user_id": "u1", "name": "First"})
        write_file("b.json", {"user_id": "u2", "name": "Other"})
        write_file("c.json", {"user_id": "u1", "name": "Second"})

        stats = ETLPipeline(memory_store).run(_options(data_dir, batch_size=2))

        assert stats.skipped_existing == 1
        assert stats.successful_records == 2
        assert memory_store.users["u1"].name == "First"
        assert memory_store.bulk_calls == [["u1", "u2"]]

    def test_partial_batch_is_flushed(self, memory_store, write_file, data_dir):
        for i in range(5):
            write_file(f"{i}.json", {"user_id": f"u{i}"})

        ETLPipeline(memory_store).run(_options(data_dir, batch_size=2))

        assert memory_store.bulk_calls == [["u0", "u1"], ["u2", "u3"], ["u4"]]

    def test_load_failure_is_counted_not_raised(self, memory_store, write_file, data_dir):
        memory_store.fail_user_ids = {"u1"}
        write_file("a.json", {"user_id": "u1"})
        write_file("b.json", {"user_id": "u2"})
        write_file("c.json", {"user_id": "u3"})

        stats = ETLPipeline(memory_store).run(_options(data_dir, batch_size=2))

        assert stats.failed_records == 2
        assert stats.successful_records == 1
        assert list(memory_store.users) == ["u3"]

    def test_oversized_numbers_do_not_stop_the_run(self, memory_store, write_file, data_dir):
        """Test huge numeric literals neither fail the run nor block later files"""
        write_file("a.json", '{"user_id": "u1", "advocacy_programs": [{"program_id": "p1", '
                             '"total_sales_attributed": 1' + "0" * 400 + "}]}")
        write_file("b.json", '{"user_id": "u9", "joined_at": 1' + "0" * 400 + "}")
        write_file("c.json", '{"likes": ' + "1" * 5000 + "}")
        write_file("d.json", {"user_id": "u2"})

        pipeline = ETLPipeline(memory_store)
        stats = pipeline.run(_options(data_dir))

        assert pipeline.state == PipelineState.DONE
        assert stats.unparsable_files == 1
        assert sorted(memory_store.users) == ["u1", "u2", "u9"]
        assert memory_store.users["u1"].total_sales == 0
        assert memory_store.users["u9"].join_date is None

    def test_validator_error_is_counted(self, memory_store, write_file, data_dir, monkeypatch):
        """Test an unexpected validator exception fails only its own record"""
        original = pipeline_module.validate_user

        def flaky(data):
            if data.get("user_id") == "bad":
                raise OverflowError("too large")
            return original(data)

        monkeypatch.setattr(pipeline_module, "validate_user", flaky)
        write_file("a.json", {"user_id": "bad"})
        write_file("b.json", {"user_id": "good"})

        stats = ETLPipeline(memory_store).run(_options(data_dir))

        assert stats.failed_records == 1
        assert stats.validation_errors == 0
        assert list(memory_store.users) == ["good"]

    def test_transform_error_is_counted(self, memory_store, write_file, data_dir, monkeypatch):
        """Test a record that fails to transform does not abort the run"""
        original = UserTransformer.transform

        def flaky(self, raw):
            if raw.user_id == "bad":
                raise RuntimeError("boom")
            return original(self, raw)

        monkeypatch.setattr(UserTransformer, "transform", flaky)
        write_file("a.json", {"user_id": "bad"})
        write_file("b.json", {"user_id": "good"})

        stats = ETLPipeline(memory_store).run(_options(data_dir))

        assert stats.failed_records == 1
        assert stats.processed_files == 1
        assert list(memory_store.users) == ["good"]

    def test_max_files(self, memory_store, write_file, data_dir):
        for i in range(4):
            write_file(f"{i}.json", {"user_id": f"u{i}"})

        stats = ETLPipeline(memory_store).run(_options(data_dir, max_files=3))

        assert stats.total_files == 3
        assert sorted(memory_store.users) == ["u0", "u1", "u2"]

    def test_clean_database_option(self, memory_store, write_file, data_dir):
        memory_store.users["stale"] = User(user_id="stale")
        write_file("a.json", {"user_id": "fresh"})

        ETLPipeline(memory_store).run(_options(data_dir, clean_database=True))

        assert list(memory_store.users) == ["fresh"]

    def test_without_clean_existing_users_remain(self, memory_store, write_file, data_dir):
        memory_store.users["old"] = User(user_id="old")
        write_file("a.json", {"user_id": "new"})

        stats = ETLPipeline(memory_store).run(_options(data_dir))

        assert sorted(memory_store.users) == ["new", "old"]
        assert stats.successful_records == 1

    def test_rerun_is_idempotent(self, memory_store, write_file, data_dir, make_raw_user):
        """Test running twice over the same input converges on the same rows"""
        write_file("a.json", make_raw_user())
        write_file("b.json", {"user_id": "u2", "advocacy_programs": [{"program_id": "p1", "brand": "Acme"}]})
        pipeline = ETLPipeline(memory_store)

        pipeline.run(_options(data_dir))
        snapshot = {uid: u.model_dump() for uid, u in memory_store.users.items()}
        stats = pipeline.run(_options(data_dir))

        assert {uid: u.model_dump() for uid, u in memory_store.users.items()} == snapshot
        assert stats.successful_records == 2
        assert memory_store.program_stats["p1"].user_count == 2

    def test_empty_directory(self, memory_store, data_dir):
        stats = ETLPipeline(memory_store).run(_options(data_dir))

        assert stats.total_files == 0
        assert stats.successful_records == 0
        assert memory_store.program_stats == {}

    def test_cache_cleared_after_aggregation(self, memory_store, write_file, data_dir):
        cache = {"analytics:top-users": ["stale"]}
        write_file("a.json", {"user_id": "u1"})

        ETLPipeline(memory_store, cache=cache).run(_options(data_dir))

        assert cache == {}

    def test_store_closed_on_success(self, memory_store, data_dir):
        ETLPipeline(memory_store).run(_options(data_dir))

        assert memory_store.open_calls == 1
        assert memory_store.close_calls == 1


class TestPipelineFailures:
    """Tests for fatal errors"""

    def test_missing_directory_is_fatal(self, memory_store, tmp_path):
        pipeline = ETLPipeline(memory_store)

        with pytest.raises(DataDirectoryNotFoundError):
            pipeline.run(_options(tmp_path / "missing"))

        assert pipeline.state == PipelineState.FAILED
        assert memory_store.close_calls == 1

    def test_store_open_failure_is_wrapped(self, make_store, data_dir):
        """Test any open() failure surfaces as StoreConnectionError"""
        store = make_store(open_error=OSError("connection refused"))
        pipeline = ETLPipeline(store)

        with pytest.raises(StoreConnectionError, match="connection refused"):
            pipeline.run(_options(data_dir))

        assert pipeline.state == PipelineState.FAILED
        assert store.close_calls == 1

    def test_store_connection_error_passes_through(self, make_store, data_dir):
        error = StoreConnectionError("no database")
        store = make_store(open_error=error)

        with pytest.raises(StoreConnectionError) as exc_info:
            ETLPipeline(store).run(_options(data_dir))

        assert exc_info.value is error


class TestPipelineMetrics:
    """Tests for the injected stats sink"""

    def test_metrics_recorded(self, memory_store, write_file, data_dir, make_raw_user):
        metrics = PipelineMetrics()
        write_file("a.json", make_raw_user())
        write_file("b.json", {"user_id": "u2"})
        write_file("c.json", "{broken")
        write_file("d.json", "[]")

        ETLPipeline(memory_store, metrics=metrics).run(_options(data_dir))

        assert metrics.get_sample_value("etl_records_processed_total", {"status": "clean"}) == 1
        assert metrics.get_sample_value("etl_records_processed_total", {"status": "messy"}) == 1
        assert metrics.get_sample_value("etl_validation_failures_total") == 1
        assert metrics.get_sample_value("etl_files_skipped_total", {"reason": "unparsable"}) == 1
        assert metrics.get_sample_value("etl_users_written_total", {"operation": "insert"}) == 2
        assert metrics.get_sample_value("etl_batches_loaded_total", {"status": "success"}) == 1
        assert metrics.get_sample_value("etl_run_duration_seconds_count") == 1

    def test_injected_deduplicator_counts_per_run(self, memory_store, write_file, data_dir):
        """Test statistics report only this run's duplicates"""
        dedup = Deduplicator()
        write_file("a.json", {"user_id": "u1", "name": "Jane"})
        write_file("b.json", {"user_id": "u1", "email": "jane@example.com"})
        pipeline = ETLPipeline(memory_store, deduplicator=dedup)

        pipeline.run(_options(data_dir))
        stats = pipeline.run(_options(data_dir))

        assert dedup.merged == 2
        assert stats.duplicates_merged == 1

    def test_fresh_metrics_per_run_by_default(self, memory_store, write_file, data_dir):
        write_file("a.json", {"user_id": "u1"})
        pipeline = ETLPipeline(memory_store)

        pipeline.run(_options(data_dir))
        first = pipeline.metrics
        pipeline.run(_options(data_dir))

        assert pipeline.metrics is not first
        assert pipeline.metrics.get_sample_value("etl_records_processed_total", {"status": "messy"}) == 1
