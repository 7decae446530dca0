from .logger import StructuredFormatter, configure_logging, get_logger

__all__ = ["StructuredFormatter", "configure_logging", "get_logger"]
