"""
Logging setup for spatial networks.
"""

import logging

from ..network_config import LOGGING_CONFIG


def setup_logger(name='spatial_network', config=None):
    """
    Configure a package logger.

    Parameters
    ----------
    name : str, optional
        Logger name; module loggers under ``spatial_network`` inherit it
    config : dict, optional
        Overrides for ``LOGGING_CONFIG`` (level, format, console, file)

    Returns
    -------
    logging.Logger
        Configured logger
    """
    settings = dict(LOGGING_CONFIG)
    if config:
        settings.update(config)

    logger = logging.getLogger(name)
    level = getattr(logging, str(settings['level']).upper(), logging.INFO)
    logger.setLevel(level)

    # Handlers are replaced so repeated calls do not duplicate output
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(settings['format'])

    if settings.get('console', True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if settings.get('file'):
        file_handler = logging.FileHandler(settings['file'])
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
