from gatehouse.common.logging_setup import get_logger

logger = get_logger("gatehouse.session")
