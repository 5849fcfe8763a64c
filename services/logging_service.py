# services/logging_service.py
import logging

audit_logger = logging.getLogger("inventory.audit")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level="INFO", log_file=None):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO),
                        format=LOG_FORMAT, handlers=handlers)


def log_audit(action, user_id, details=None):
    audit_logger.info("%s by %s %s", action, user_id or "system", details or {})
