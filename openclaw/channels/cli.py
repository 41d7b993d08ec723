"""
CLI channel for trying channel bindings locally.

Each stdin line becomes an inbound message. ``/as <user>`` changes the sender
so private and filter bindings can be exercised from one terminal.
"""

from __future__ import annotations

import asyncio
import sys

from loguru import logger

from openclaw.channels.base import Channel, IncomingMessage, OutgoingMessage

CHAT_ID = "cli_default"


class CLIChannel(Channel):
    """
    Usage::

        channel = CLIChannel(user_id="alice")
        channel.set_handler(gateway_handler)
        await channel.start()
    """

    name = "cli"

    def __init__(
        self,
        account_id: str = "default",
        user_id: str = "user",
        prompt: str = "You: ",
        bot_name: str = "Agent",
    ) -> None:
        super().__init__(account_id)
        self.user_id = user_id
        self.prompt = prompt
        self.bot_name = bot_name
        self._running = False
        self._seq = 0

    async def send(self, message: OutgoingMessage) -> None:
        if not message.text:
            return
        target = "" if message.chat_id == CHAT_ID else f" -> {message.chat_id}"
        print(f"\n{self.bot_name}{target}: {message.text}\n")

    def handle_command(self, text: str) -> bool:
        """Apply a ``/as <user>`` line. Returns False for ordinary text."""
        command, _, arg = text.partition(" ")
        if command != "/as":
            return False
        if arg.strip():
            self.user_id = arg.strip()
        print(f"[openclaw CLI] sending as {self.user_id}")
        return True

    def next_message(self, text: str) -> IncomingMessage:
        self._seq += 1
        return IncomingMessage(
            channel=self.name,
            chat_id=CHAT_ID,
            user_id=self.user_id,
            message_id=f"cli_{self.account_id}_{self._seq}",
            text=text,
            account_id=self.account_id,
        )

    async def start(self) -> None:
        """Read stdin until EOF or stop()."""
        self._running = True
        print(f"[openclaw CLI] {self.name}:{self.account_id} as {self.user_id}. /as <user> switches sender, Ctrl+D quits.\n")

        loop = asyncio.get_running_loop()
        while self._running:
            # stdin is blocking
            line = await loop.run_in_executor(None, self._read_line)
            if not line:
                break
            text = line.strip()
            if not text or self.handle_command(text):
                continue

            try:
                reply = await self._dispatch(self.next_message(text))
            except Exception as exc:
                logger.error(f"[cli] Handler error: {exc}")
                print(f"\n[Error] {exc}\n")
                continue
            if reply:
                await self.send(OutgoingMessage(chat_id=CHAT_ID, text=reply, account_id=self.account_id))

        self._running = False

    def _read_line(self) -> str:
        sys.stdout.write(self.prompt)
        sys.stdout.flush()
        return sys.stdin.readline()

    async def stop(self) -> None:
        self._running = False
        logger.debug(f"[cli] {self.account_id} stopped")
