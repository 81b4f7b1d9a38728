# SQLModel definitions: imported here to ensure metadata is populated.
from .base import IdMixin, CreatedAtMixin  # noqa: F401
from .course import Course, Subject  # noqa: F401
from .user import User  # noqa: F401
from .event import Event  # noqa: F401
from .address import Address  # noqa: F401
from .tag import Tag, EventTag  # noqa: F401
from .subscription import Subscription  # noqa: F401
