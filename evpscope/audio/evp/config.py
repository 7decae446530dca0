"""
Detector configuration.

DetectionConfig is validated when created and every runtime update produces
a new validated instance, so the detector never runs with a half-applied or
invalid configuration.
"""

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Union

from dotenv import find_dotenv, load_dotenv

from ..spectral.windows import WindowType


class ConfigurationError(ValueError):
    """Invalid detector configuration."""

    pass


@dataclass(frozen=True)
class DetectionConfig:
    """
    Configuration for the EVP detector.

    Attributes:
        sensitivity: Voice-likelihood score a frame needs to count as voice.
        min_frequency: Lower edge of the analysis band in Hz.
        max_frequency: Upper edge of the analysis band in Hz.
        voice_threshold: Band energy (dB) above which voice energy is present.
        noise_gate_threshold: Input level (dBFS) below which the gate closes.
        classification_threshold: Minimum confidence for a detection event.
        fft_size: Transform size; a power of two.
        window_function: Analysis window.
        sample_rate: Sample rate of the incoming audio in Hz.
        min_decibels: Lower clip level of spectra.
        max_decibels: Upper clip level of spectra.
        smoothing_time_constant: Spectral smoothing weight in [0, 1).
        enable_conditioning: Apply band-pass and noise gate before analysis.
        use_interframe_flux: Compute flux against the previous frame.
    """

    # Detection parameters
    sensitivity: float = 0.7
    min_frequency: float = 100.0
    max_frequency: float = 4000.0
    voice_threshold: float = -40.0
    noise_gate_threshold: float = -50.0
    classification_threshold: float = 0.6

    # Transform parameters
    fft_size: int = 4096
    window_function: Union[str, WindowType] = WindowType.HANN
    sample_rate: float = 44100.0
    min_decibels: float = -90.0
    max_decibels: float = -10.0
    smoothing_time_constant: float = 0.8

    # Processing options
    enable_conditioning: bool = True
    use_interframe_flux: bool = False

    def __post_init__(self):
        """Normalise and validate configuration parameters."""
        try:
            window = WindowType.parse(self.window_function)
        except ValueError as e:
            raise ConfigurationError(str(e)) from None
        object.__setattr__(self, "window_function", window)
        self._validate_config()

    def _validate_config(self) -> None:
        """
        Validate configuration parameters.

        Raises:
            ConfigurationError: If any configuration parameter is invalid.
        """
        if not 0.0 <= self.sensitivity <= 1.0:
            raise ConfigurationError("Sensitivity must be between 0.0 and 1.0")

        if not 0.0 <= self.classification_threshold <= 1.0:
            raise ConfigurationError(
                "Classification threshold must be between 0.0 and 1.0"
            )

        if self.min_frequency < 0.0:
            raise ConfigurationError("Minimum frequency must be non-negative")

        if self.min_frequency >= self.max_frequency:
            raise ConfigurationError(
                "Minimum frequency must be less than maximum frequency"
            )

        if self.sample_rate <= 0:
            raise ConfigurationError("Sample rate must be positive")

        if (
            not isinstance(self.fft_size, int)
            or self.fft_size <= 0
            or self.fft_size & (self.fft_size - 1) != 0
        ):
            raise ConfigurationError("FFT size must be a positive power of 2")

        if self.min_decibels >= self.max_decibels:
            raise ConfigurationError("Minimum decibels must be less than maximum")

        if not 0.0 <= self.smoothing_time_constant < 1.0:
            raise ConfigurationError(
                "Smoothing time constant must be in [0.0, 1.0)"
            )

        if self.enable_conditioning:
            nyquist = self.sample_rate / 2.0
            if self.min_frequency <= 0.0 or self.max_frequency >= nyquist:
                raise ConfigurationError(
                    f"Band-pass range must lie strictly between 0 and {nyquist}Hz"
                )

    @property
    def frame_duration(self) -> float:
        """Duration in seconds covered by one FFT block."""
        return self.fft_size / self.sample_rate

    def updated(self, **changes: Any) -> "DetectionConfig":
        """
        Return a validated copy with some fields replaced.

        Args:
            **changes: Field names and new values.

        Returns:
            DetectionConfig: New configuration.

        Raises:
            ConfigurationError: If a field is unknown or a value is invalid.
        """
        known = {f.name for f in dataclasses.fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration fields: {', '.join(sorted(unknown))}"
            )
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary format.

        Returns:
            Dict[str, Any]: Dictionary representation of the configuration.
        """
        data = dataclasses.asdict(self)
        data["window_function"] = self.window_function.value
        return data

    @classmethod
    def from_env(
        cls, prefix: str = "EVP_", load_dotenv_file: bool = True, **overrides: Any
    ) -> "DetectionConfig":
        """
        Build a configuration from environment variables.

        Variables are named after the fields with ``prefix`` prepended, for
        example ``EVP_SENSITIVITY`` or ``EVP_FFT_SIZE``. A ``.env`` file is
        loaded first when one can be found.

        Args:
            prefix: Environment variable prefix.
            load_dotenv_file: Load the nearest ``.env`` file first.
            **overrides: Values that take precedence over the environment.

        Returns:
            DetectionConfig: Validated configuration.

        Raises:
            ConfigurationError: If a variable cannot be parsed or is invalid.
        """
        if load_dotenv_file:
            load_dotenv(find_dotenv(usecwd=True))

        values: Dict[str, Any] = {}
        for f in dataclasses.fields(cls):
            raw = os.getenv(f"{prefix}{f.name.upper()}")
            if raw is None:
                continue
            parser = _ENV_PARSERS.get(f.name, float)
            try:
                values[f.name] = parser(raw)
            except ValueError:
                raise ConfigurationError(
                    f"Invalid value for {prefix}{f.name.upper()}: {raw!r}"
                ) from None

        values.update(overrides)
        return cls(**values)


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(raw)


_ENV_PARSERS: Dict[str, Callable[[str], Any]] = {
    "fft_size": int,
    "window_function": str,
    "enable_conditioning": _parse_bool,
    "use_interframe_flux": _parse_bool,
}
