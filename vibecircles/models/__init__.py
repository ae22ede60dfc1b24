from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import models to register tables
from .users import User  # noqa: F401,E402
from .relationships import Relationship, Follow  # noqa: F401,E402
from .posts import Post  # noqa: F401,E402
from .comments import Comment  # noqa: F401,E402
from .likes import Like  # noqa: F401,E402
from .groups import Group, GroupMember  # noqa: F401,E402
from .notifications import Notification  # noqa: F401,E402
