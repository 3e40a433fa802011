import pytest

import cropscout.config as config

ENV_VARS = (
    config.STEP_ENV_VAR,
    config.DOWNSAMPLE_ENV_VAR,
    config.PRESCALE_ENV_VAR,
    config.RULE_OF_THIRDS_ENV_VAR,
    config.OUTPUT_QUALITY_ENV_VAR,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    # setenv first so values loaded from .env files are rolled back afterwards.
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
