"""Vulture dead-code adapter."""

from __future__ import annotations

import re
from typing import List, Optional

from ..core.issues import Issue, Severity
from .base import Adapter

# app/models.py:42: unused function 'legacy_total' (60% confidence)
_LINE = re.compile(r"^(?P<file>.+?):(?P<line>\d+): (?P<message>.+?) \((?P<confidence>\d+)% confidence")


class VultureAdapter(Adapter):
    """Parses vulture's one-finding-per-line text output."""

    name = "vulture"
    executable = "vulture"
    category = "maintenance"

    def audit(self) -> List[Issue]:
        args = ["vulture", ".", "--min-confidence", str(self.options.get("min_confidence", 60))]
        excludes = self.options.get("exclude_dirs") or []
        if excludes:
            args += ["--exclude", ",".join(excludes)]

        result = self.run_command(args)
        # vulture exits 3 when dead code was found
        self.ensure_ran(result, ok_codes=(0, 3))
        return [issue for issue in map(self._parse_line, result.stdout.splitlines()) if issue]

    def _parse_line(self, text: str) -> Optional[Issue]:
        match = _LINE.match(text.strip())
        if not match:
            return None
        confidence = int(match.group("confidence"))
        message = match.group("message")
        return self.create_issue(
            message=message,
            severity=Severity.MEDIUM if confidence >= 90 else Severity.LOW,
            type="dead_code",
            file=self.relative_path(match.group("file")),
            line=int(match.group("line")),
            metadata={"rule": message.split(" '")[0].replace(" ", "_"), "confidence": confidence},
        )
