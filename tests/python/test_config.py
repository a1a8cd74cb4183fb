"""
Tests for runtime configuration.
"""

import threading

import pytest

from nnmat import (
    ComputeConfig,
    ConvolutionConfig,
    PoolingConfig,
    RandomConfig,
    RecordingConfig,
    config,
    get_config,
)


class TestGlobalConfig:
    """Test global configuration sections."""

    def test_defaults(self):
        """Default values of every section."""
        assert config.convolution.stride == 1
        assert config.convolution.dilation == 1
        assert config.pooling.pool_size == 2
        assert config.pooling.stride == 1
        assert config.compute.gumbel_tau == 1.0
        assert config.random.seed is None

    def test_get_config(self):
        """get_config returns the global instance."""
        assert get_config() is config

    def test_set_section(self):
        """Sections are replaced as a whole."""
        config.pooling = PoolingConfig(pool_size=3, stride=3)

        assert config.pooling.pool_size == 3
        assert config.to_dict()["pooling"] == {"pool_size": 3, "stride": 3}

    def test_reset(self):
        """reset restores the defaults."""
        config.convolution = ConvolutionConfig(stride=4)
        config.reset()

        assert config.convolution.stride == 1

    def test_seed_reproducible(self):
        """Setting the random section reseeds the generator."""
        config.random = RandomConfig(seed=5)
        first = config.rng.random(3)
        config.random = RandomConfig(seed=5)
        second = config.rng.random(3)

        assert list(first) == list(second)

    def test_callbacks(self):
        """Change callbacks receive the new section."""
        seen = []
        config.on_change("compute", seen.append)
        config.compute = ComputeConfig(gumbel_tau=0.1)

        assert seen[-1].gumbel_tau == 0.1
        config._callbacks["compute"].remove(seen.append)

    def test_failing_callback_is_logged(self, caplog):
        """A failing callback does not stop the update."""
        def broken(value):
            raise RuntimeError("boom")

        config.on_change("recording", broken)
        try:
            config.recording = RecordingConfig(enabled=False)
        finally:
            config._callbacks["recording"].remove(broken)

        assert not config.recording.enabled
        assert "boom" in caplog.text

    def test_repr(self):
        """repr shows every section."""
        text = repr(config)

        assert text.startswith("NnmatConfig(")
        assert "convolution" in text


class TestLocalConfig:
    """Test thread-local overrides."""

    def test_local_override(self):
        """Overrides apply inside the block only."""
        with config.local(convolution=ConvolutionConfig(stride=3)):
            assert config.convolution.stride == 3
            assert config.pooling.pool_size == 2
        assert config.convolution.stride == 1

    def test_local_random(self):
        """A local random section has its own generator."""
        global_rng = config.rng
        with config.local(random=RandomConfig(seed=1)):
            assert config.rng is not global_rng
            assert config.random.seed == 1
        assert config.rng is global_rng

    def test_unknown_section(self):
        """Unknown section names are rejected."""
        with pytest.raises(TypeError):
            config.local(kernels=None)

    def test_other_threads_unaffected(self):
        """Local overrides are invisible to other threads."""
        seen = []

        def worker():
            seen.append(config.pooling.stride)

        with config.local(pooling=PoolingConfig(stride=5)):
            thread = threading.Thread(target=worker)
            thread.start()
            thread.join()

        assert seen == [1]
