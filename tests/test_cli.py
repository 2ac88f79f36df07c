import json
import pytest

import run_demo
from confluence_engine.market_data import InMemoryMarketData


def test_json_single_timeframe(capsys):
    assert run_demo.main(["--json", "--single", "--interval", "5"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["symbol"] == run_demo.DEFAULT_SYMBOL
    assert payload["interval"] == "5"
    assert payload["direction"] in ("CALL", "PUT")


def test_json_confluence_with_sentiment(capsys):
    assert run_demo.main(["--json", "--sentiment", "-40", "--symbol", "BTCUSD"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["primary_signal"]["sentiment"]["score"] == -40.0
    assert len(payload["timeframes"]) == 4


def test_text_report(capsys):
    assert run_demo.main([]) == 0
    out = capsys.readouterr().out
    assert "SIGNAL ANALYSIS: EURUSD" in out
    assert "TIMEFRAME CONFLUENCE" in out


def test_missing_data_exits_with_error(monkeypatch, capsys):
    monkeypatch.setattr(run_demo, "SimulatedMarketData", lambda seed=None: InMemoryMarketData())
    assert run_demo.main(["--single"]) == 1
    assert capsys.readouterr().out == ""


def test_version_flag(capsys):
    with pytest.raises(SystemExit) as excinfo:
        run_demo.main(["--version"])
    assert excinfo.value.code == 0
    assert run_demo.VERSION in capsys.readouterr().out
