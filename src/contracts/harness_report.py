from typing import List, Optional

from pydantic import BaseModel, Field


class RequestEvidence(BaseModel):
    index: int
    status_code: Optional[int] = None
    pool: Optional[str] = None
    release: Optional[str] = None
    elapsed: float = 0.0
    error: Optional[str] = None


class PhaseResult(BaseModel):
    name: str
    passed: bool
    detail: str = ""
    elapsed: float = 0.0


class HarnessReport(BaseModel):
    """
    Outcome of one failover verification run with per-request evidence.
    """

    passed: bool = False
    target_url: str
    expected_primary: str
    phases: List[PhaseResult] = Field(default_factory=list)
    evidence: List[RequestEvidence] = Field(default_factory=list)
    standby_fraction: Optional[float] = None
    failures: List[str] = Field(default_factory=list)

    def summary(self) -> str:
        lines = [f"Failover verification against {self.target_url}: {'PASS' if self.passed else 'FAIL'}"]
        for phase in self.phases:
            mark = "ok" if phase.passed else "FAILED"
            lines.append(f"  [{mark}] {phase.name} ({phase.elapsed:.2f}s) {phase.detail}".rstrip())
        for item in self.evidence:
            lines.append(
                f"  #{item.index:02d} status={item.status_code} pool={item.pool} "
                f"release={item.release} elapsed={item.elapsed:.3f}s"
                + (f" error={item.error}" if item.error else "")
            )
        if self.standby_fraction is not None:
            lines.append(f"  standby fraction: {self.standby_fraction:.2%}")
        for failure in self.failures:
            lines.append(f"  failure: {failure}")
        return "\n".join(lines)
