from sqlalchemy import func, select

from tradedb.models.trade import TradeAmount, TradeEmployment
from tradedb.schemas.trade_import import JobStatus
from tradedb.services.bulk_loader import BulkLoader
from tradedb.services.import_engine import FileResult, ImportOrchestrator, fold_results

from conftest import HEADER, TRADE_CSV, run_inline, write_csv


def _count(session_factory, model, year=2022):
    with session_factory() as db:
        return db.execute(select(func.count(model.id)).where(model.year == year)).scalar()


# ─── Full runs ───

def test_full_year_import(orchestrator, session_factory):
    job = orchestrator.start_import(2022)

    assert job.status == JobStatus.COMPLETED
    assert job.records_imported == 8
    assert job.files_processed == 3
    assert job.files_failed == 0
    assert job.failed_files == []
    assert job.countries_processed == 6  # 2 countries × 3 tradeflows
    assert job.error_message is None
    assert job.started_at is not None
    assert job.completed_at is not None
    assert job.current_step == "Import completed. Total records: 8"

    assert _count(session_factory, TradeAmount) == 6
    assert _count(session_factory, TradeEmployment) == 2


def test_rows_carry_year_tradeflow_and_source(orchestrator, session_factory):
    orchestrator.start_import(2022, countries=["IN"])

    with session_factory() as db:
        rows = db.execute(select(TradeAmount).order_by(TradeAmount.id)).scalars().all()
    assert len(rows) == 3
    assert {r.tradeflow_type for r in rows} == {"imports"}
    assert {r.source_file for r in rows} == {"2022/IN/imports/trade.csv"}
    assert rows[0].region2 == "US"
    assert rows[0].industry1 == "Textiles"


def test_explicit_country_list(orchestrator):
    job = orchestrator.start_import(2022, countries=["US"])
    assert job.status == JobStatus.COMPLETED
    assert job.records_imported == 5
    assert job.countries == ["US"]
    assert job.countries_processed == 3


def test_requested_countries_match_lowercase_folders(orchestrator, trade_data_root, session_factory):
    write_csv(trade_data_root, 2021, "us", "imports", "trade.csv", TRADE_CSV)

    job = orchestrator.start_import(2021, countries=["US"])

    assert job.status == JobStatus.COMPLETED
    assert job.countries == ["US"]
    assert job.records_imported == 3
    assert _count(session_factory, TradeAmount, year=2021) == 3

    history = orchestrator.repository.get_import_history(job_id=job.job_id)
    assert [h["country"] for h in history] == ["us"]


def test_file_failures_do_not_stop_the_job(orchestrator, trade_data_root, session_factory):
    write_csv(trade_data_root, 2022, "US", "exports", "mystery.csv", TRADE_CSV)
    write_csv(trade_data_root, 2022, "IN", "domestic", "trade_factor.csv", HEADER + "IN,US,A,B,abc\n")

    job = orchestrator.start_import(2022)

    assert job.status == JobStatus.COMPLETED
    assert job.records_imported == 8
    assert job.files_processed == 5
    assert job.files_failed == 2
    failures = {f.source_file: f for f in job.failed_files}
    assert "Unknown CSV file type: mystery.csv" in failures["2022/US/exports/mystery.csv"].error
    assert failures["2022/US/exports/mystery.csv"].table is None
    assert "abc" in failures["2022/IN/domestic/trade_factor.csv"].error
    assert failures["2022/IN/domestic/trade_factor.csv"].table == "trade_factor"
    assert _count(session_factory, TradeAmount) == 6


def test_empty_file_is_skipped(orchestrator, trade_data_root):
    write_csv(trade_data_root, 2022, "US", "domestic", "trade.csv", HEADER)
    job = orchestrator.start_import(2022)
    assert job.files_processed == 4
    assert job.files_failed == 0
    assert job.records_imported == 8


def test_failed_batch_reports_partial_rows(csv_service, repository, session_factory, job_store, trade_data_root):
    rows = "".join(f"US,CN,ind{i},x,{i}\n" for i in range(5))
    write_csv(trade_data_root, 2022, "US", "exports", "trade.csv", HEADER + rows)
    loader = BulkLoader(session_factory, batch_size=2)
    real = loader._write_batch

    def flaky(spec, batch):
        if any(r["source_file"] == "2022/US/exports/trade.csv" and r["industry1"] == "ind2" for r in batch):
            raise RuntimeError("disk full")
        return real(spec, batch)

    loader._write_batch = flaky
    orchestrator = ImportOrchestrator(csv_service, repository, loader, job_store=job_store, submit=run_inline)

    job = orchestrator.start_import(2022, countries=["US"])

    assert job.status == JobStatus.COMPLETED
    assert job.files_failed == 1
    failure = job.failed_files[0]
    assert failure.source_file == "2022/US/exports/trade.csv"
    assert failure.rows_written == 2
    assert "batch 2 failed: disk full" in failure.error
    assert job.records_imported == 5 + 2


# ─── Clearing ───

def test_reimport_without_clear_duplicates_rows(orchestrator, session_factory):
    orchestrator.start_import(2022)
    orchestrator.start_import(2022)
    assert _count(session_factory, TradeAmount) == 12


def test_clear_replaces_year_rows(orchestrator, session_factory):
    orchestrator.start_import(2022)
    orchestrator.start_import(2022)
    job = orchestrator.start_import(2022, clear_existing_data=True)

    assert job.status == JobStatus.COMPLETED
    assert job.clear_existing_data is True
    assert _count(session_factory, TradeAmount) == 6
    assert _count(session_factory, TradeEmployment) == 2


def test_clear_only_touches_the_requested_year(orchestrator, trade_data_root, session_factory):
    write_csv(trade_data_root, 2021, "US", "imports", "trade.csv", TRADE_CSV)
    orchestrator.start_import(2021)
    orchestrator.start_import(2022, clear_existing_data=True)
    assert _count(session_factory, TradeAmount, year=2021) == 3


def test_clear_failure_fails_the_job_with_the_store_message(orchestrator, monkeypatch, session_factory):
    def broken(year):
        raise RuntimeError("permission denied for table trade")

    monkeypatch.setattr(orchestrator.repository, "clear_year_data", broken)
    job = orchestrator.start_import(2022, clear_existing_data=True)

    assert job.status == JobStatus.FAILED
    assert job.error_message == "permission denied for table trade"
    assert job.records_imported == 0
    assert _count(session_factory, TradeAmount) == 0


# ─── Job failures ───

def test_no_countries_fails_the_job(orchestrator):
    job = orchestrator.start_import(2023)
    assert job.status == JobStatus.FAILED
    assert job.error_message == "No countries found for year 2023"
    assert job.completed_at is not None


def test_submission_failure_fails_the_job(csv_service, repository, session_factory, job_store):
    def refuse(func, job_id, kwargs):
        raise RuntimeError("Import worker pool is not running")

    orchestrator = ImportOrchestrator(
        csv_service, repository, BulkLoader(session_factory), job_store=job_store, submit=refuse,
    )
    job = orchestrator.start_import(2022)

    assert job.status == JobStatus.FAILED
    assert job.error_message == "Could not start import: Import worker pool is not running"
    assert orchestrator.get_status(job.job_id) == job


def test_queued_job_is_pending(csv_service, repository, session_factory, job_store):
    queued = []
    orchestrator = ImportOrchestrator(
        csv_service, repository, BulkLoader(session_factory), job_store=job_store,
        submit=lambda func, job_id, kwargs: queued.append((func, kwargs)),
    )
    job = orchestrator.start_import(2022, countries=["IN"])

    assert job.status == JobStatus.PENDING
    assert queued[0][1] == {"job_id": job.job_id, "year": 2022, "countries": ["IN"], "clear_existing_data": False}

    func, kwargs = queued[0]
    func(**kwargs)
    assert orchestrator.get_status(job.job_id).status == JobStatus.COMPLETED


# ─── Status, history ───

def test_unknown_job_has_no_status(orchestrator):
    assert orchestrator.get_status("no-such-job") is None


def test_jobs_are_listed_newest_first(orchestrator):
    first = orchestrator.start_import(2022, countries=["US"])
    second = orchestrator.start_import(2023)

    jobs = orchestrator.list_jobs()
    assert [j.job_id for j in jobs] == [second.job_id, first.job_id]
    assert [j.job_id for j in orchestrator.list_jobs(status=JobStatus.FAILED)] == [second.job_id]


def test_each_file_is_logged(orchestrator, repository, trade_data_root):
    write_csv(trade_data_root, 2022, "US", "exports", "mystery.csv", TRADE_CSV)
    job = orchestrator.start_import(2022)

    history = repository.get_import_history(job_id=job.job_id)
    assert len(history) == 4
    by_file = {(h["country"], h["tradeflow_type"], h["file_name"]): h for h in history}
    assert by_file[("US", "imports", "trade_employment.csv")]["records_imported"] == 2
    assert by_file[("US", "imports", "trade_employment.csv")]["table_name"] == "trade_employment"
    assert by_file[("US", "exports", "mystery.csv")]["status"] == "Failed"
    assert repository.get_import_history(status="Failed")[0]["file_name"] == "mystery.csv"


# ─── Aggregation ───

def test_fold_results():
    totals = fold_results([
        FileResult("2022/US/imports/trade.csv", "trade", 3),
        FileResult("2022/US/imports/x.csv", None, 0, "Unknown CSV file type: x.csv"),
        FileResult("2022/US/imports/trade_factor.csv", "trade_factor", 0, skipped=True),
        FileResult("2022/IN/imports/trade.csv", "trade", 1000, "batch 2 failed: timeout"),
    ])

    assert totals.records_imported == 1003
    assert totals.files_processed == 4
    fields = totals.progress_fields()
    assert fields["files_failed"] == 2
    assert [f.source_file for f in fields["failed_files"]] == [
        "2022/US/imports/x.csv", "2022/IN/imports/trade.csv",
    ]
    assert fields["failed_files"][1].rows_written == 1000
