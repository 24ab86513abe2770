"""User confirmation for applying fixes."""

import os
from typing import Optional, Protocol, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from ..core.issues import Issue

AUTO_APPLY_ENV = "SMARTAUDIT_AUTO_APPLY"
NO_RISKY_ENV = "SMARTAUDIT_NO_RISKY"


def env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


class Confirmer(Protocol):
    """Answers whether a batch of safe fixes, or one risky fix, may be applied."""

    def confirm_safe_batch(self, issues: Sequence[Issue]) -> bool:
        ...

    def confirm_risky(self, issue: Issue) -> bool:
        ...


class ConsoleConfirmer:
    """Interactive prompts; safe batches default to yes, risky fixes to no."""

    def __init__(self, console: Optional[Console] = None, assume_yes_risky: bool = False):
        self.console = console or Console()
        self.assume_yes_risky = assume_yes_risky

    def confirm_safe_batch(self, issues: Sequence[Issue]) -> bool:
        if env_flag(AUTO_APPLY_ENV):
            return True

        self.console.print(f"\n[bold green]{len(issues)} safe fixes available[/bold green]")
        for issue in issues[:10]:
            self.console.print(f"  [dim]{issue.location}[/dim] {issue.rule or issue.type}: {issue.message}")
        if len(issues) > 10:
            self.console.print(f"  [dim]... and {len(issues) - 10} more[/dim]")
        return Confirm.ask("Apply safe fixes?", default=True, console=self.console)

    def confirm_risky(self, issue: Issue) -> bool:
        if env_flag(NO_RISKY_ENV):
            return False

        body = (
            f"[bold]Tool:[/bold] {issue.tool}\n"
            f"[bold]Issue:[/bold] {issue.message}\n"
            f"[bold]Location:[/bold] {issue.location}\n\n"
            "[yellow]This fix may change program behavior. Review the result before merging.[/yellow]"
        )
        self.console.print(Panel(body, title="Risky fix", border_style="red"))
        if self.assume_yes_risky:
            return True
        return Confirm.ask("Apply this risky fix?", default=False, console=self.console)


class StaticConfirmer:
    """Fixed answers for non-interactive runs and tests."""

    def __init__(self, safe: bool = True, risky: bool = False):
        self.safe = safe
        self.risky = risky
        self.asked_risky = []

    def confirm_safe_batch(self, issues: Sequence[Issue]) -> bool:
        return self.safe

    def confirm_risky(self, issue: Issue) -> bool:
        self.asked_risky.append(issue)
        return self.risky
