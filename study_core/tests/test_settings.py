import pytest

from study_core.config.settings import StudySettings


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in ("MAX_CONTEXT_MESSAGES", "MAX_INPUT_CHARS", "SERVER_PORT", "STRUCTURED_FALLBACK"):
        monkeypatch.delenv(key, raising=False)
    s = StudySettings(_env_file=None)
    assert s.max_context_messages == 20
    assert s.max_input_chars == 8000
    assert s.server_port == 5050
    assert s.structured_mode_label == "Cheat Sheet"
    assert s.structured_temperature < s.text_temperature
    assert s.structured_fallback is True


def test_env_and_yaml_sources(monkeypatch, tmp_path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("max_context_messages: 7\ntext_temperature: 0.9\n", encoding="utf-8")
    monkeypatch.setenv("STUDY_CONFIG_FILE", str(cfg))
    monkeypatch.setenv("TEXT_TEMPERATURE", "0.6")
    s = StudySettings(_env_file=None)
    assert s.max_context_messages == 7
    assert s.text_temperature == 0.6


def test_short_api_key_is_rejected(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "short")
    with pytest.raises(ValueError):
        StudySettings(_env_file=None)
