import json
import sys

import pytest
from rich.console import Console

from endledger.cli import render_pool_table, render_rare_table, run_stats
from endledger.gacha.statistics import build_gacha_view
from endledger.testing import PullRecordFactory, build_ledger


def render(renderable) -> str:
    console = Console(record=True, width=200)
    console.print(renderable)
    return console.export_text()


def sample_ledger():
    factory = PullRecordFactory()
    return build_ledger(
        "4242",
        [factory.build(3, rarity=4), factory.build(2, rarity=6), factory.build(1, rarity=5)],
        [factory.build(10, rarity=4, pool_id="weponbox_1", weapon=True)],
    )


def test_pool_table_shows_pity_against_cap():
    text = render(render_pool_table(build_gacha_view(sample_ledger())))

    assert "UID:4242" in text
    assert "1/90" in text
    assert "1/80" in text


def test_rare_table_marks_pending_row():
    view = build_gacha_view(sample_ledger())
    standard = next(pool for pool in view.pools if pool.key == "standard")

    text = render(render_rare_table(standard.title, standard.logs))

    assert "pending" in text
    assert "Standard: recent 6*" in text


def test_stats_command_reads_ledger_file(tmp_path, monkeypatch, capsys):
    path = tmp_path / "4242.json"
    path.write_text(json.dumps(sample_ledger().to_dict()), encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["endledger-stats", str(path), "--rares"])

    run_stats()

    assert "Standard" in capsys.readouterr().out


def test_stats_command_exits_on_unreadable_file(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, "argv", ["endledger-stats", str(tmp_path / "missing.json")])

    with pytest.raises(SystemExit) as excinfo:
        run_stats()
    assert excinfo.value.code == 1
