"""Host-native accept commands fired on every fast tick."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

ACCEPT_COMMANDS_ANTIGRAVITY = [
    "antigravity.agent.acceptAgentStep",
    "antigravity.command.accept",
    "antigravity.prioritized.agentAcceptAllInFile",
    "antigravity.prioritized.agentAcceptFocusedHunk",
    "antigravity.prioritized.supercompleteAccept",
    "antigravity.terminalCommand.accept",
    "antigravity.acceptCompletion",
]

ACCEPT_COMMANDS_CURSOR = [
    "cursorai.action.acceptAndRunGenerateInTerminal",
    "cursorai.action.acceptGenerateInTerminal",
]

CommandExecutor = Callable[[str], Awaitable[object]]


def detect_ide(app_name: str | None) -> str:
    name = (app_name or "").lower()
    if "cursor" in name:
        return "Cursor"
    if "antigravity" in name:
        return "Antigravity"
    return "Code"


def accept_commands_for(ide: str) -> list[str]:
    key = (ide or "").lower()
    if key == "antigravity":
        return list(ACCEPT_COMMANDS_ANTIGRAVITY)
    if key == "cursor":
        return list(ACCEPT_COMMANDS_CURSOR)
    return []


class NativeCommands:
    """Runs every accept command for the IDE; individual failures are dropped.

    The commands are idempotent and local to this window, so they run on every
    instance regardless of who holds the lease, and the next tick is the retry.
    """

    def __init__(self, ide: str, executor: CommandExecutor | None = None) -> None:
        self.ide = ide
        self.commands = accept_commands_for(ide)
        self.executor = executor

    async def run_accept_commands(self) -> int:
        """Returns how many commands completed without error."""
        if not self.commands or self.executor is None:
            return 0
        results = await asyncio.gather(
            *(self.executor(cmd) for cmd in self.commands), return_exceptions=True,
        )
        failed = [cmd for cmd, r in zip(self.commands, results) if isinstance(r, Exception)]
        if failed:
            logger.debug("Accept commands failed: %s", ", ".join(failed))
        return len(self.commands) - len(failed)
