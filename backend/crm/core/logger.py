import logging
from logging.handlers import RotatingFileHandler

from crm.core.settings import get_settings

# Create logger
backup_logger = logging.getLogger("backup")
backup_logger.setLevel(logging.INFO)

# Prevent duplicate handlers
if not backup_logger.handlers:
    # Rotating file handler: max 5 MB per file, keep 3 backups
    file_handler = RotatingFileHandler(
        get_settings().backup_log_file, maxBytes=5 * 1024 * 1024, backupCount=3
    )
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    file_handler.setFormatter(formatter)
    backup_logger.addHandler(file_handler)
