from gatehouse.common.logging_setup import get_logger

logger = get_logger("gatehouse.user")

PROFILE_FIELDS = ("fullname", "address", "bio", "profile_image_key")
