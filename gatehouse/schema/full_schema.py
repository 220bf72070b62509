# single import point so SQLModel.metadata sees every table
from gatehouse.schema.user import Users, UserProfile, UserRoleName
from gatehouse.schema.session import UserSession

__all__ = ["Users", "UserProfile", "UserRoleName", "UserSession"]
