from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.orm import Session

from progress_api.core.config import Settings, settings as default_settings


def system_clock() -> int:
    return int(time.time())


@dataclass
class ReportingEnv:
    """Collaborators shared by every reporting component for one unit of work.

    A request (or a scheduled pass) builds one env and hands it to the
    services it calls. Nothing is memoized at module level: the session,
    the settings snapshot and the clock all travel with the env.
    """

    db: Session
    settings: Settings = field(default_factory=lambda: default_settings)
    clock: Callable[[], int] = system_clock

    def now(self) -> int:
        return int(self.clock())
