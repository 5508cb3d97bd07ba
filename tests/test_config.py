import pytest

from smc_signal_bot.config import StrategyConfig, load_config, strategy_signature_hash


def _write(tmp_path, text: str) -> str:
    p = tmp_path / "config.yaml"
    p.write_text(text, encoding="utf-8")
    return str(p)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in ("TELEGRAM_TOKEN", "TELEGRAM_CHAT_IDS", "SCAN_SYMBOLS", "ACCOUNT_BALANCE", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)


def test_empty_file_gives_defaults(tmp_path):
    cfg = load_config(_write(tmp_path, ""))
    assert cfg.provider.type == "gateio"
    assert cfg.provider.symbols == []
    assert cfg.telegram.chat_ids == []
    assert cfg.strategy.strict_mode is True
    assert cfg.risk.take_profit_multiples == (2.0, 3.0, 4.0)
    assert cfg.scanner.signal_ttl_hours == 4.0


def test_sections_are_loaded(tmp_path):
    path = _write(
        tmp_path,
        """
provider:
  symbols: [btcusdt, ethusdt]
strategy:
  strict_mode: false
  sweep_required: true
risk:
  min_rrr: 3
  take_profit_multiples: [1.5, 2.5]
alerts:
  min_rating: A
""",
    )
    cfg = load_config(path)
    assert cfg.provider.symbols == ["BTCUSDT", "ETHUSDT"]
    assert cfg.strategy.strict_mode is False
    assert cfg.strategy.sweep_required is True
    assert cfg.risk.min_rrr == 3
    assert cfg.risk.take_profit_multiples == (1.5, 2.5)
    assert cfg.alerts.min_rating == "A"


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("TELEGRAM_TOKEN", "tok")
    monkeypatch.setenv("TELEGRAM_CHAT_IDS", "1, 2,")
    monkeypatch.setenv("SCAN_SYMBOLS", "solusdt,xrpusdt")
    monkeypatch.setenv("ACCOUNT_BALANCE", "2500.5")
    cfg = load_config(_write(tmp_path, "provider:\n  symbols: [BTCUSDT]\n"))
    assert cfg.telegram.token == "tok"
    assert cfg.telegram.chat_ids == ["1", "2"]
    assert cfg.provider.symbols == ["SOLUSDT", "XRPUSDT"]
    assert cfg.risk.account_balance == 2500.5


def test_empty_take_profits_rejected(tmp_path):
    with pytest.raises(ValueError):
        load_config(_write(tmp_path, "risk:\n  take_profit_multiples: []\n"))


def test_unknown_key_rejected(tmp_path):
    with pytest.raises(TypeError):
        load_config(_write(tmp_path, "strategy:\n  no_such_option: 1\n"))


def test_signature_hash_tracks_strategy_inputs():
    a = strategy_signature_hash(StrategyConfig())
    assert a == strategy_signature_hash(StrategyConfig())
    assert a != strategy_signature_hash(StrategyConfig(sweep_window=7))
