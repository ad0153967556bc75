# logging_config.py
import logging
import sys

logger = logging.getLogger(__name__)

_FORMATS = {
    "DEV": (logging.DEBUG, "%(levelname)-8s %(name)s: %(message)s"),
    "PROD": (logging.INFO, "%(asctime)s %(levelname)s %(name)s %(message)s"),
    "TEST": (logging.WARNING, "%(levelname)s %(name)s: %(message)s"),
}


def setup_logging(app_env: str) -> None:
    """Configure the root logger for the given APP_ENV (DEV, PROD or TEST)."""
    env = (app_env or "").upper()
    level, fmt = _FORMATS.get(env, _FORMATS["PROD"])

    logging.basicConfig(
        format=fmt,
        stream=sys.stdout,
        level=level,
        force=True,
    )
    # botocore is very chatty at DEBUG
    logging.getLogger("botocore").setLevel(max(level, logging.INFO))

    if env not in _FORMATS:
        logger.error(f"staging ENV '{app_env}' not recognised, hint: check .env file")
        return

    logger.info("Log initiated")
