"""Interactive first-run setup.

Asks for the codex binary, discovers models through it, then asks for the
model, approval mode, sandbox mode and reasoning-only mode, and saves the
result to the user config file.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from prompt_toolkit import PromptSession
from prompt_toolkit.validation import Validator
from rich.markup import escape

from zz import ui
from zz.config import CONFIG_PATH, ApprovalMode, Config, SandboxMode, save_config
from zz.models import ModelInfo, fetch_available_models

logger = logging.getLogger(__name__)

CUSTOM_MODEL = "__custom__"

APPROVAL_CHOICES: List[Tuple[str, str]] = [
    (ApprovalMode.PROMPT.value, "Prompt - ask before each action"),
    (ApprovalMode.AUTO_APPROVE.value, "Auto-approve - allow all actions automatically"),
    (ApprovalMode.DENY.value, "Deny - reject all actions"),
]

SANDBOX_CHOICES: List[Tuple[str, str]] = [
    (SandboxMode.WORKSPACE_WRITE.value, "Workspace write - can read/write within the project"),
    (SandboxMode.FULL_ACCESS.value, "Full access - no sandbox (needed for GUI apps, system commands)"),
    (SandboxMode.READ_ONLY.value, "Read only - can only read files"),
]


def model_choices(models: Sequence[ModelInfo]) -> List[Tuple[str, str]]:
    """Menu entries for the discovered models, default first, then custom entry."""
    if not models:
        return [(CUSTOM_MODEL, "Enter model name manually")]

    ordered = sorted(models, key=lambda m: not m.is_default)
    choices = []
    for m in ordered:
        label = f"{m.display_name} - {m.description}" if m.description else m.display_name
        if m.is_default:
            label += " (default)"
        choices.append((m.model, label))
    choices.append((CUSTOM_MODEL, "Custom (enter manually)"))
    return choices


class SetupWizard:
    """Prompts for each configuration value.

    Args:
        session: prompt_toolkit session used for all questions.
    """

    def __init__(self, session: Optional[PromptSession] = None):
        self._session = session or PromptSession()

    async def ask_text(self, message: str, default: str = "") -> str:
        return (await self._session.prompt_async(message, default=default)).strip()

    async def ask_choice(self, message: str, choices: Sequence[Tuple[str, str]]) -> str:
        """Numbered menu; returns the value of the chosen entry."""
        ui.console.print(f"[bold]{message}[/bold]")
        for i, (_, label) in enumerate(choices, 1):
            ui.console.print(f"  [cyan]{i}[/cyan]) {escape(label)}")

        validator = Validator.from_callable(
            lambda text: text.strip().isdigit() and 1 <= int(text) <= len(choices),
            error_message=f"Enter a number between 1 and {len(choices)}",
            move_cursor_to_end=True,
        )
        answer = await self._session.prompt_async("> ", default="1", validator=validator)
        return choices[int(answer) - 1][0]

    async def ask_confirm(self, message: str, default: bool = False) -> bool:
        hint = "[Y/n]" if default else "[y/N]"
        answer = (await self._session.prompt_async(f"{message} {hint} ")).strip().lower()
        if not answer:
            return default
        return answer in ("y", "yes")

    async def run(self) -> Config:
        """Ask every question and build the resulting Config."""
        codex_bin = await self.ask_text("Path to codex binary (leave blank for default): ")

        ui.console.print("Fetching available models from codex...")
        models = await fetch_available_models(codex_bin or None)
        logger.info("Discovered %d models", len(models))
        if not models:
            ui.console.print("[yellow]Could not fetch models from codex. Showing manual entry instead.[/yellow]")

        model = await self.ask_choice("Choose a model:", model_choices(models))
        if model == CUSTOM_MODEL:
            model = await self.ask_text("Enter custom model name: ")

        approval_mode = await self.ask_choice("Approval mode for commands/file changes:", APPROVAL_CHOICES)
        sandbox = await self.ask_choice("Sandbox mode for command execution:", SANDBOX_CHOICES)
        reasoning_only = await self.ask_confirm(
            "Reasoning-only mode? (show thinking but omit the response text)"
        )

        return Config(
            model=model or None,
            approval_mode=ApprovalMode(approval_mode),
            sandbox=SandboxMode(sandbox),
            reasoning_only=reasoning_only,
            codex_bin=codex_bin or None,
        )


async def create_config(
    config_path: Path = CONFIG_PATH,
    wizard: Optional[SetupWizard] = None,
) -> Config:
    """Run the wizard and save its result.

    Returns:
        The saved configuration.
    """
    config = await (wizard or SetupWizard()).run()
    path = save_config(config, config_path)
    ui.console.print(f"[green]Config saved to {path}[/green]")
    return config
