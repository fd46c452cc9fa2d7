"""Command injection into tmux panes."""

import asyncio
import logging
import unicodedata
from dataclasses import dataclass
from typing import Protocol

from command_relay.domain.errors import InjectionFailure

logger = logging.getLogger(__name__)


class CommandInjector(Protocol):
    """Interface for delivering a command into a terminal session."""

    async def inject(self, terminal_target: str, command: str) -> None:
        """Type the command into the target and execute it.

        Raises InjectionFailure when the command was not delivered.
        """


def neutralize_command(command: str) -> str:
    """Flatten a command into one line of printable text.

    Line breaks become spaces and other control characters are dropped so
    the payload can never press Enter or send escape sequences on its own.
    """
    cleaned: list[str] = []
    for char in command:
        if char in "\r\n\t":
            cleaned.append(" ")
        elif unicodedata.category(char) == "Cc":
            continue
        else:
            cleaned.append(char)
    return "".join(cleaned).strip()


@dataclass
class TmuxCommandInjector:
    """Injector that drives `tmux send-keys` without a shell."""

    tmux_binary: str = "tmux"
    timeout_seconds: float = 5.0
    enter_delay_seconds: float = 0.2

    async def inject(self, terminal_target: str, command: str) -> None:
        """Deliver the command as literal keys followed by Enter."""
        payload = neutralize_command(command)
        if not payload:
            raise InjectionFailure("Command is empty after sanitizing")
        try:
            await asyncio.wait_for(
                self._deliver(terminal_target, payload),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as exc:
            logger.warning(
                "Command delivery timed out", extra={"target": terminal_target}
            )
            raise InjectionFailure("Delivery timed out") from exc
        except OSError as exc:
            logger.exception("tmux could not be started")
            raise InjectionFailure(f"Transport error: {exc}") from exc
        logger.info("Command injected", extra={"target": terminal_target})

    async def session_exists(self, terminal_target: str) -> bool:
        """Return true when tmux knows the target session."""
        session_name = terminal_target.split(":", maxsplit=1)[0]
        returncode, _ = await self._run("has-session", "-t", session_name)
        return returncode == 0

    async def _deliver(self, terminal_target: str, payload: str) -> None:
        if not await self.session_exists(terminal_target):
            raise InjectionFailure(f"Terminal target not found: {terminal_target}")
        returncode, stderr = await self._run(
            "send-keys", "-t", terminal_target, "-l", "--", payload
        )
        if returncode != 0:
            raise InjectionFailure(f"send-keys failed: {stderr}")
        await asyncio.sleep(self.enter_delay_seconds)
        returncode, stderr = await self._run(
            "send-keys", "-t", terminal_target, "Enter"
        )
        if returncode != 0:
            raise InjectionFailure(f"send-keys Enter failed: {stderr}")

    async def _run(self, *args: str) -> tuple[int, str]:
        process = await asyncio.create_subprocess_exec(
            self.tmux_binary,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            raise
        return process.returncode or 0, stderr.decode(errors="replace").strip()
