from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Diagnostic:
    code: str
    message: str
    severity: str = "ERROR"
    location: Optional[str] = None
    hints: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "location": self.location,
            "hints": self.hints,
        }


class AlpackError(Exception):
    code = "E-ALPACK"

    def __init__(self, message: str, *, location: Optional[str] = None, hints: Optional[List[str]] = None):
        super().__init__(message)
        self.diagnostic = Diagnostic(
            code=self.code,
            message=message,
            location=location,
            hints=list(hints or []),
        )


class ConfigurationError(AlpackError):
    code = "E-CONFIG"


class RootfsMissingError(AlpackError):
    code = "E-ROOTFS"


class BackendUnavailableError(AlpackError):
    code = "E-BACKEND"


class SpawnError(AlpackError):
    code = "E-SPAWN"


class SetupError(AlpackError):
    code = "E-SETUP"


class MountRepairWarning(Diagnostic):
    def __init__(self, message: str, location: Optional[str] = None) -> None:
        super().__init__(code="W-MTAB", message=message, severity="WARNING", location=location)

