from assignhub.models.assignment import TaskAssignment  # noqa: F401
from assignhub.models.device_token import DeviceToken  # noqa: F401
from assignhub.models.notification import Notification, NotificationType  # noqa: F401
from assignhub.models.submission import TaskSubmission  # noqa: F401
from assignhub.models.task import Task  # noqa: F401
from assignhub.models.user import User  # noqa: F401
