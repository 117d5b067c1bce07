import logging

logger = logging.getLogger("arcl")

# Short alias for call sites that just want to emit an error line
log_error = logger.error
