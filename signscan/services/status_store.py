from dataclasses import dataclass, field
from typing import Optional, List

from signscan.orchestrator.contracts import Notice
from signscan.orchestrator.errors import message_for

MAX_LOGS = 200
MAX_NOTICES = 50


@dataclass
class StatusStore:
    signatures_scanned: int = 0
    last_best_confidence: Optional[float] = None
    logs: List[str] = field(default_factory=list)
    notices: List[Notice] = field(default_factory=list)

    def log(self, msg: str):
        self.logs.append(msg)
        if len(self.logs) > MAX_LOGS:
            self.logs = self.logs[-MAX_LOGS:]

    def notify(self, notice: Notice):
        self.notices.append(notice)
        if len(self.notices) > MAX_NOTICES:
            self.notices = self.notices[-MAX_NOTICES:]

    def success(self, message: str):
        self.notify(Notice(level="success", message=message))

    def notify_info(self, message: str):
        self.notify(Notice(level="info", message=message))

    def error(self, code: str, detail: str = ""):
        """Report a classified error with its user-facing message."""
        self.notify(Notice(level="error", message=message_for(code), code=code))
        self.log(f"error {code}" + (f": {detail}" if detail else ""))

    @property
    def last_notice(self) -> Optional[Notice]:
        return self.notices[-1] if self.notices else None
