# SQLModel definitions - imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .member import OrganizationMember  # noqa: F401
from .invitation import OrganizationInvitation  # noqa: F401
from .experiment import Experiment  # noqa: F401
from .task import EvaluationTask  # noqa: F401
from .participant import Participant  # noqa: F401
from .submission import EvaluationSubmission  # noqa: F401
from .video import Video  # noqa: F401
