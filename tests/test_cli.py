from app import cli
from ingest.bmkg_sync import SyncResult


def _combined() -> SyncResult:
    return SyncResult(
        success=True,
        message="Sync completed. Created 2 new disasters, skipped 1 existing ones.",
        created_count=2,
        skipped_count=1,
        mode="combined",
        sub_results={
            "latest": SyncResult(success=True, message="ok", created_count=1),
            "recent": SyncResult(success=True, message="ok", mode="batch"),
            "felt": SyncResult(success=True, message="ok", mode="batch"),
        },
    )


def test_print_combined_summary(capsys) -> None:
    cli.print_result(_combined())
    out = capsys.readouterr().out
    assert "Summary:" in out
    assert "Total Created  2" in out
    assert "latest, recent, felt" in out
    assert "\033[" not in out


def test_exit_code_follows_result(monkeypatch, tmp_path) -> None:
    seen = {}

    async def fake_run_sync(kind, settings, db_path):
        seen["kind"] = kind
        return SyncResult(success=False, message="Failed to sync felt earthquakes: down")

    monkeypatch.setattr(cli, "run_sync", fake_run_sync)

    assert cli.main(["--type", "felt", "--db", str(tmp_path / "x.db")]) == 1
    assert seen["kind"] == "felt"


def test_schedule_mode_logs_instead_of_printing(monkeypatch, capsys, caplog) -> None:
    async def fake_run_sync(kind, settings, db_path):
        return _combined()

    monkeypatch.setattr(cli, "run_sync", fake_run_sync)

    with caplog.at_level("INFO", logger="app.cli"):
        assert cli.main(["--schedule"]) == 0
    assert capsys.readouterr().out == ""
    assert "BMKG sync completed" in caplog.text
