"""
Verify use case — load config and run the post-provisioning checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from rsprovision.core.config.loader import ConfigError, find_config_file, load_config
from rsprovision.core.services.verification import VerificationReport, verify_installation


@dataclass
class VerifyResult:
    report: VerificationReport | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None and self.report.ok

    def to_dict(self) -> dict:
        if self.error:
            return {"ok": False, "error": self.error}
        assert self.report is not None
        return self.report.to_dict()


def run_verify(config_path: Path | None = None, **kwargs) -> VerifyResult:
    """Verify the host against the config a run would use.

    Extra keyword arguments are passed to ``verify_installation``.
    """
    try:
        if config_path is None:
            config_path = find_config_file()
        config = load_config(config_path, search=False)
    except ConfigError as e:
        return VerifyResult(error=str(e))
    return VerifyResult(report=verify_installation(config, **kwargs))
