"""Type aliases used throughout remote_contents."""

from __future__ import annotations

import os  # noqa: TC003
from typing import Union

LocalPath = Union[str, "os.PathLike[str]"]  # noqa: UP007
Content = str | bytes
