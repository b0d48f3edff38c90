import inspect
import logging

LOG_FORMAT = '%(asctime)s %(levelname)s %(module)s %(label)s: %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

_level = logging.INFO
_configured_loggers = set()


class SafeLabelFormatter(logging.Formatter):
    def format(self, record):
        if not hasattr(record, 'label'):
            record.label = '-'
        return super().format(record)


class LabelLoggerAdapter(logging.LoggerAdapter):
    def __init__(self, logger, label):
        super().__init__(logger, {'label': label})

    def process(self, msg, kwargs):
        # Only prepend the label, the formatter already includes the module
        return f"{self.extra['label']}: {msg}", kwargs


def configure_logging(level="INFO"):
    """Apply the configured level to every logger handed out so far and to later ones."""
    global _level
    resolved = logging.getLevelName(str(level).upper())
    _level = resolved if isinstance(resolved, int) else logging.INFO
    for name in _configured_loggers:
        logging.getLogger(name).setLevel(_level)


def new_logger(label, module_name=None):
    # If module_name is not given, use the caller's module
    if module_name is None:
        frame = inspect.currentframe()
        try:
            module_name = frame.f_back.f_globals['__name__']
        finally:
            del frame
    logger = logging.getLogger(module_name)
    logger.propagate = False  # Prevent duplicate log messages

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(SafeLabelFormatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
        logger.addHandler(handler)
    logger.setLevel(_level)
    _configured_loggers.add(module_name)
    return LabelLoggerAdapter(logger, label)
