from .logger import get_logger, log_race_event, setup_logging

__all__ = ['get_logger', 'log_race_event', 'setup_logging']
