from __future__ import annotations

import pytest

from scribeflow.config import ASRConfig, AudioConfig, RetryConfig, Settings, VADConfig


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        asr=ASRConfig(api_key="test-key"),
        retry=RetryConfig(max_retries=2, base_delay_s=0, max_delay_s=0, rate_limit_base_delay_s=0),
        vad=VADConfig(mode="off"),
        # Low rate keeps synthetic long recordings small.
        audio=AudioConfig(target_sample_rate=1000),
        log_dir=str(tmp_path / "logs"),
    )
