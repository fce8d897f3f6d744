import logging
from pathlib import Path
from datetime import datetime
from passthrough_bench.api.config import get_settings

PACKAGE_LOGGER = "passthrough_bench"

def setup_run_logger(work_dir: Path = None, settings=None):
    """
    Create the diagnostic logger for one benchmark run.
    Log path: {work_dir}/logs/{date}/run_{HH-MM-SS-mmm}.log

    The handler is attached to the package logger, so every module logger
    (logging.getLogger(__name__)) writes into the same run log.
    File-only logging: the console is reserved for the printed report.

    Returns:
        tuple: (logger instance, log file path)
    """
    settings = settings or get_settings()
    now = datetime.now()

    date_str = now.strftime('%Y-%m-%d')
    time_str = now.strftime('%H-%M-%S-%f')[:-3]  # HH-MM-SS-mmm (milliseconds)

    if work_dir is not None and not Path(settings.log_dir).is_absolute():
        base_dir = Path(work_dir) / settings.log_dir
    else:
        base_dir = settings.resolved_log_dir()

    log_dir = base_dir / date_str
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / f"run_{time_str}.log"

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.propagate = False  # Don't propagate to root logger (no console output)

    # Drop handlers from a previous run in the same process
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
        datefmt='%H:%M:%S'
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger, str(log_file)
