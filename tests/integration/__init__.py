"""
Integration tests for evpscope.

Modules:
- test_detection_pipeline: real signals through the full detector, offline
  and on the threaded runner
- test_cli: the `analyze` command on generated WAV files
"""
