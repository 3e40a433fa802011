import cropscout.config as config


def test_read_env_file_parses_comments_exports_and_quotes(tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "\n".join(
            [
                "# comment",
                "# CROPSCOUT_OUTPUT_QUALITY=10",
                "export CROPSCOUT_STEP='4'",
                'CROPSCOUT_PRESCALE="off"',
                "INVALID_LINE",
                "  CROPSCOUT_DOWNSAMPLE = 6  ",
            ]
        ),
        encoding="utf-8",
    )

    parsed = config._read_env_file(env_file)

    assert parsed["CROPSCOUT_STEP"] == "4"
    assert parsed["CROPSCOUT_PRESCALE"] == "off"
    assert parsed["CROPSCOUT_DOWNSAMPLE"] == "6"
    assert "INVALID_LINE" not in parsed
    assert "CROPSCOUT_OUTPUT_QUALITY" not in parsed
    assert "# CROPSCOUT_OUTPUT_QUALITY" not in parsed


def test_read_env_file_missing_returns_empty(tmp_path) -> None:
    assert config._read_env_file(tmp_path / "nope.env") == {}


def test_environment_wins_over_env_file(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv(config.STEP_ENV_VAR, "12")
    (tmp_path / ".env").write_text("CROPSCOUT_STEP=4", encoding="utf-8")

    assert config.resolve_step() == 12


def test_search_dir_env_file_is_used_when_cwd_has_none(tmp_path) -> None:
    search = tmp_path / "photos"
    search.mkdir()
    (search / ".env").write_text("CROPSCOUT_DOWNSAMPLE=4\nCROPSCOUT_RULE_OF_THIRDS=no", encoding="utf-8")

    assert config.resolve_down_sample(search_dir=search) == 4
    assert config.resolve_rule_of_thirds(search_dir=search) is False


def test_numeric_values_are_clamped_and_garbage_falls_back(monkeypatch) -> None:
    monkeypatch.setenv(config.STEP_ENV_VAR, "500")
    monkeypatch.setenv(config.DOWNSAMPLE_ENV_VAR, "zero")
    monkeypatch.setenv(config.OUTPUT_QUALITY_ENV_VAR, "5")

    assert config.resolve_step() == 64
    assert config.resolve_down_sample() == 8
    assert config.resolve_output_quality() == 30


def test_bool_values_accept_common_spellings(monkeypatch) -> None:
    monkeypatch.setenv(config.PRESCALE_ENV_VAR, "OFF")
    assert config.resolve_prescale() is False
    monkeypatch.setenv(config.PRESCALE_ENV_VAR, "maybe")
    assert config.resolve_prescale() is True


def test_default_options_reflect_environment(monkeypatch) -> None:
    monkeypatch.setenv(config.STEP_ENV_VAR, "16")
    monkeypatch.setenv(config.PRESCALE_ENV_VAR, "0")

    opts = config.default_options()

    assert opts.step == 16
    assert opts.prescale is False
    assert opts.score_down_sample == 8
    assert opts.rule_of_thirds is True
