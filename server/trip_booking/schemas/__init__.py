"""Pydantic schemas for request/response validation."""

from .common import *  # noqa: F403
from .health import *  # noqa: F403
from .hold import *  # noqa: F403
from .reservation import *  # noqa: F403
from .webhook import *  # noqa: F403
