"""Test the command-line entry point."""

import json

from signalbot.cli import main


def test_options_json(capsys):
    assert main(["options", "AAPL", "175", "--json"]) == 0
    chain = json.loads(capsys.readouterr().out)
    assert len(chain) == 36


def test_options_bad_spot():
    assert main(["options", "AAPL", "0"]) == 2


def test_classify(capsys):
    assert main(["classify", "$AAPL strong earnings", "--tickers", "AAPL"]) == 0
    out = capsys.readouterr().out
    assert "Impact:        bullish" in out
    assert "AAPL: bullish" in out


def test_no_command_prints_help():
    assert main([]) == 1
