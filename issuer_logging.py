"""
Logging configuration for the SAS issuer
"""
import logging
import os
import sys
import threading
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from pythonjsonlogger import jsonlogger

import config

ISSUER_LOGGER_NAME = "sas_issuer"


def setup_issuer_logging(log_file: str = None, level: str = None):
    """
    Set up logging for the issuer.

    Records go, as JSON, to a rotating file under logs/ and to stdout so the
    function host can ingest them. Fields passed through ``extra`` become
    top-level keys of the record.
    """
    log_file = log_file or config.LOG_FILE
    level = getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO)

    logger = logging.getLogger(ISSUER_LOGGER_NAME)
    logger.setLevel(level)

    # Clear any existing handlers
    if logger.handlers:
        logger.handlers.clear()

    # Prevent logs from propagating to the root logger
    logger.propagate = False

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10485760,  # 10MB
        backupCount=5
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(jsonlogger.JsonFormatter(config.LOG_FORMAT))
    logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(level)
    stream_handler.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(stream_handler)

    # Module loggers under services.* report through the same handlers
    services_logger = logging.getLogger("services")
    services_logger.setLevel(level)
    services_logger.handlers = list(logger.handlers)
    services_logger.propagate = False

    return logger


# Lock for thread-safe logging of issuance records
_issuance_log_lock = threading.Lock()


def log_issuance(container_name: str, policy_id: str, mode: str, expires_on=None, policy_last_modified=None, issuance_id: str = None):
    """
    Log one issued token as a structured JSON entry.

    The token itself is never logged, only what identifies the policy behind it.

    Args:
        container_name (str): Container the token is scoped to.
        policy_id (str): Stored policy referenced by the token, if any.
        mode (str): "stored-policy" or "ad-hoc".
        expires_on (datetime, optional): Embedded expiry for ad-hoc tokens.
        policy_last_modified (datetime, optional): Last-modified time of the policy set.
        issuance_id (str, optional): Unique ID for the record. Generated if not provided.
    """
    if issuance_id is None:
        issuance_id = str(uuid.uuid4())

    log_entry = {
        "issuance_id": issuance_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "container": container_name,
        "policy_id": policy_id,
        "mode": mode,
        "expires_on": expires_on.isoformat() if expires_on else None,
        "policy_last_modified": policy_last_modified.isoformat() if policy_last_modified else None,
    }

    with _issuance_log_lock:
        logging.getLogger(ISSUER_LOGGER_NAME).info("issuance", extra=log_entry)
    return log_entry
