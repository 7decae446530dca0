"""
Unit tests for evpscope components.

Modules:
- test_windows, test_transform, test_features, test_signal_processing,
  test_conditioning: spectral analysis building blocks
- test_config, test_voice_activity, test_accumulator, test_classifier,
  test_detector: EVP detection
- test_sources: audio sources
- test_logger: logging configuration

Spectra are synthetic wherever possible so expected values can be derived
by hand.
"""
