"""Pass/fail outcome of an upload or admin request.

Each check that fails records a flag by name. The outcome is turned into a
query string (``authkey=false&exists=false&result=false``) or a JSON body only
at the HTTP boundary, and the result page reads the same flags back.
"""

from typing import Dict, Iterable, Mapping, Set
from urllib.parse import urlencode

FLAG_AUTHKEY = "authkey"
FLAG_SIZECHECK = "sizecheck"
FLAG_FILETYPE = "filetype"
FLAG_METADATA = "metadata"
FLAG_EXISTS = "exists"

FLAGS = (FLAG_AUTHKEY, FLAG_SIZECHECK, FLAG_FILETYPE, FLAG_METADATA, FLAG_EXISTS)

FAILED = "false"


class Outcome:
    def __init__(self, failed: Iterable[str] = ()):
        self.failed: Set[str] = set()
        for flag in failed:
            self.fail(flag)

    def fail(self, flag: str) -> None:
        if flag not in FLAGS:
            raise ValueError(f"unknown flag {flag!r}")
        self.failed.add(flag)

    def check(self, flag: str, ok: bool) -> bool:
        """Record ``flag`` as failed unless ``ok``; returns ``ok``."""
        if not ok:
            self.fail(flag)
        return ok

    @property
    def passed(self) -> bool:
        return not self.failed

    def as_dict(self) -> Dict[str, bool]:
        data = {flag: flag not in self.failed for flag in FLAGS}
        data["result"] = self.passed
        return data

    def to_query(self) -> str:
        # failed flags only, in a stable order, then the overall result
        pairs = [(flag, FAILED) for flag in FLAGS if flag in self.failed]
        pairs.append(("result", "true" if self.passed else FAILED))
        return urlencode(pairs)

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> "Outcome":
        return cls(flag for flag in FLAGS if params.get(flag) == FAILED)

    def __repr__(self) -> str:
        return f"Outcome(failed={sorted(self.failed)!r})"
