"""
nnmat Config - Runtime Configuration System

Provides dataclass-based configuration for the numeric core: default
convolution and pooling geometry, numerical constants, the random source
used by initialization and probabilistic masking, and the recording switch.

Sections can be replaced globally or overridden for the current thread only:

    from nnmat import config, ConvolutionConfig

    config.convolution = ConvolutionConfig(stride=2)

    with config.local(convolution=ConvolutionConfig(dilation=2)):
        out = image.crosscorrelate(kernel)
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import numpy as np

logger = logging.getLogger("nnmat.config")


def _recording_default() -> bool:
    """Recording is on unless NNMAT_NO_RECORDING is set."""
    return os.environ.get('NNMAT_NO_RECORDING', '').lower() not in ('1', 'true', 'yes')


# =============================================================================
# Configuration Classes
# =============================================================================

@dataclass
class ComputeConfig:
    """Configuration for numerical constants."""
    gumbel_epsilon: float = 1e-7   # Guards the double log of the Gumbel noise
    gumbel_tau: float = 1.0        # Default temperature for Matrix.gumbel_softmax


@dataclass
class ConvolutionConfig:
    """Default geometry for convolution and cross-correlation."""
    stride: int = 1
    dilation: int = 1


@dataclass
class PoolingConfig:
    """Default geometry for max and average pooling."""
    pool_size: int = 2
    stride: int = 1


@dataclass
class RandomConfig:
    """Configuration for the random source."""
    seed: Optional[int] = None


@dataclass
class RecordingConfig:
    """Configuration for the expression recording hook."""
    enabled: bool = True


# =============================================================================
# Global Configuration Manager
# =============================================================================

_SECTIONS = ("compute", "convolution", "pooling", "random", "recording")


class NnmatConfig:
    """
    Global configuration manager for nnmat.

    Provides thread-local configuration with context manager support.
    Configuration can be set globally or locally within a context.

    Example:
        # Global configuration
        config.pooling = PoolingConfig(pool_size=3, stride=3)

        # Local configuration (context manager)
        with config.local(random=RandomConfig(seed=7)):
            weights = DenseMatrix(4, 4)
            weights.initialize(Initialization.UNIFORM_HE)
        # Back to global config
    """

    def __init__(self):
        self._global_compute = ComputeConfig()
        self._global_convolution = ConvolutionConfig()
        self._global_pooling = PoolingConfig()
        self._global_random = RandomConfig()
        self._global_recording = RecordingConfig(enabled=_recording_default())
        self._global_rng = np.random.default_rng(self._global_random.seed)

        # Thread-local storage for context overrides
        self._local = threading.local()

        # Callbacks for config changes
        self._callbacks: Dict[str, List[Callable]] = {name: [] for name in _SECTIONS}

    # -------------------------------------------------------------------------
    # Property Accessors (with thread-local override support)
    # -------------------------------------------------------------------------

    def _get(self, name: str):
        value = getattr(self._local, name, None)
        if value is not None:
            return value
        return getattr(self, f"_global_{name}")

    @property
    def compute(self) -> ComputeConfig:
        """Get compute configuration."""
        return self._get("compute")

    @compute.setter
    def compute(self, value: ComputeConfig):
        """Set global compute configuration."""
        self._global_compute = value
        self._notify("compute", value)

    @property
    def convolution(self) -> ConvolutionConfig:
        """Get convolution configuration."""
        return self._get("convolution")

    @convolution.setter
    def convolution(self, value: ConvolutionConfig):
        """Set global convolution configuration."""
        self._global_convolution = value
        self._notify("convolution", value)

    @property
    def pooling(self) -> PoolingConfig:
        """Get pooling configuration."""
        return self._get("pooling")

    @pooling.setter
    def pooling(self, value: PoolingConfig):
        """Set global pooling configuration."""
        self._global_pooling = value
        self._notify("pooling", value)

    @property
    def random(self) -> RandomConfig:
        """Get random configuration."""
        return self._get("random")

    @random.setter
    def random(self, value: RandomConfig):
        """Set global random configuration and reseed the generator."""
        self._global_random = value
        self._global_rng = np.random.default_rng(value.seed)
        self._notify("random", value)

    @property
    def recording(self) -> RecordingConfig:
        """Get recording configuration."""
        return self._get("recording")

    @recording.setter
    def recording(self, value: RecordingConfig):
        """Set global recording configuration."""
        self._global_recording = value
        self._notify("recording", value)

    @property
    def rng(self) -> np.random.Generator:
        """Random generator for the current thread's random configuration."""
        local_rng = getattr(self._local, "rng", None)
        if local_rng is not None:
            return local_rng
        return self._global_rng

    # -------------------------------------------------------------------------
    # Context Manager Support
    # -------------------------------------------------------------------------

    def local(self, **kwargs) -> "_LocalConfigContext":
        """
        Create a local configuration context.

        Args:
            **kwargs: Configuration overrides (compute, convolution, pooling, random, recording)

        Returns:
            Context manager
        """
        unknown = set(kwargs) - set(_SECTIONS)
        if unknown:
            raise TypeError(f"Unknown configuration sections: {sorted(unknown)}")
        return _LocalConfigContext(self, **kwargs)

    def _set_local(self, **kwargs):
        """Set thread-local configuration."""
        for key, value in kwargs.items():
            if value is not None:
                setattr(self._local, key, value)
                if key == "random":
                    self._local.rng = np.random.default_rng(value.seed)

    def _clear_local(self, keys: List[str]):
        """Clear thread-local configuration."""
        for key in keys:
            if hasattr(self._local, key):
                setattr(self._local, key, None)
            if key == "random":
                self._local.rng = None

    # -------------------------------------------------------------------------
    # Callback Registration
    # -------------------------------------------------------------------------

    def on_change(self, config_name: str, callback: Callable):
        """
        Register callback for configuration changes.

        Args:
            config_name: Name of config ("compute", "convolution", etc.)
            callback: Function to call when config changes
        """
        if config_name in self._callbacks:
            self._callbacks[config_name].append(callback)

    def _notify(self, config_name: str, value: Any):
        """Notify callbacks of configuration change."""
        for callback in self._callbacks.get(config_name, []):
            try:
                callback(value)
            except Exception as e:
                logger.warning(f"Config callback for '{config_name}' failed: {e}")

    # -------------------------------------------------------------------------
    # Reset
    # -------------------------------------------------------------------------

    def reset(self):
        """Reset all configurations to defaults."""
        self._global_compute = ComputeConfig()
        self._global_convolution = ConvolutionConfig()
        self._global_pooling = PoolingConfig()
        self._global_random = RandomConfig()
        self._global_recording = RecordingConfig(enabled=_recording_default())
        self._global_rng = np.random.default_rng()

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary."""
        return {
            "compute": {
                "gumbel_epsilon": self.compute.gumbel_epsilon,
                "gumbel_tau": self.compute.gumbel_tau,
            },
            "convolution": {
                "stride": self.convolution.stride,
                "dilation": self.convolution.dilation,
            },
            "pooling": {
                "pool_size": self.pooling.pool_size,
                "stride": self.pooling.stride,
            },
            "random": {
                "seed": self.random.seed,
            },
            "recording": {
                "enabled": self.recording.enabled,
            },
        }

    def __repr__(self) -> str:
        return f"NnmatConfig({self.to_dict()})"


class _LocalConfigContext:
    """Context manager for local configuration override."""

    def __init__(self, config: NnmatConfig, **kwargs):
        self._config = config
        self._kwargs = kwargs
        self._keys = list(kwargs.keys())

    def __enter__(self):
        self._config._set_local(**self._kwargs)
        return self._config

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._config._clear_local(self._keys)
        return False


# =============================================================================
# Global Instance
# =============================================================================

# Global configuration instance
config = NnmatConfig()


def get_config() -> NnmatConfig:
    """Get the global configuration instance."""
    return config
