"""Reply delivery with human-like pacing.

``DeliveryChannel`` is the only way the rest of the application talks to a
user. It either sends a reply as one message or cuts it into chunks and sends
them one after the other with a reading pause, a typing indicator and a short
gap between chunks.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable, List, Optional

from src.config.interaction import InteractionConfig
from src.models.message import ChunkedSendOptions, MessageChunk
from src.utils.formatter import calculate_read_delay
from src.utils.formatter import calculate_typing_delay
from src.utils.formatter import chunk_pause
from src.utils.formatter import split_message


logger = logging.getLogger("jarvis.delivery")


async def _pause(ms: float) -> None:
    if ms > 0:
        await asyncio.sleep(ms / 1000)


class DeliveryChannel:
    """Send text to WhatsApp recipients.

    ``transport`` must expose ``send_message(to, text)``,
    ``set_typing_presence(to)`` and ``clear_presence(to)``.
    """

    def __init__(
        self,
        transport,
        config: Optional[InteractionConfig] = None,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self.transport = transport
        self.config = config or InteractionConfig()
        self._rand = rand

    async def send_single(self, to: str, text: str) -> None:
        await self.transport.send_message(to, text)

    async def simulate_typing(self, to: str, duration_ms: int) -> None:
        """Show "typing..." to ``to`` for ``duration_ms``.

        Presence errors are logged and ignored; the pause still happens.
        """

        try:
            await self.transport.set_typing_presence(to)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not set typing presence for %s: %r", to, exc)

        await _pause(duration_ms)

        try:
            await self.transport.clear_presence(to)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not clear presence for %s: %r", to, exc)

    async def send_chunked(
        self,
        to: str,
        text: str,
        options: Optional[ChunkedSendOptions] = None,
    ) -> List[MessageChunk]:
        """Split ``text`` and send each chunk in order.

        A failed send stops the sequence and the error propagates to the
        caller. Returns the chunks that were sent.
        """

        opts = options or ChunkedSendOptions()
        cfg = self.config
        chunks = split_message(text, cfg.chunking)
        simulate = cfg.features.human_simulation

        for chunk in chunks:
            if simulate and chunk.index == 0 and cfg.reading.enabled:
                await _pause(
                    calculate_read_delay(
                        text,
                        per_word=cfg.reading.delay_per_word,
                        min_delay=cfg.reading.min_delay,
                        max_delay=cfg.reading.max_delay,
                        rand=self._rand,
                    )
                )

            if (
                simulate
                and opts.typing_between_chunks
                and cfg.typing_indicator.enabled
                and cfg.typing_indicator.show_between_chunks
            ):
                base_delay = opts.base_delay or cfg.typing_indicator.base_delay
                await self.simulate_typing(
                    to, calculate_typing_delay(chunk.text, base_delay=base_delay, rand=self._rand)
                )

            await self.transport.send_message(to, chunk.text)

            if not chunk.is_last:
                delays = cfg.chunk_delays
                delay = chunk_pause(chunk.text, delays.short, delays.medium, delays.long)
                if opts.variable_delay:
                    delay += (self._rand() - 0.5) * (delay * 0.2)
                await _pause(delay)

        if len(chunks) > 1:
            logger.info("Delivered %d chunks to %s", len(chunks), to)

        return chunks

    async def reply(self, to: str, text: str, single: bool, options: Optional[ChunkedSendOptions] = None) -> None:
        """Send ``text`` as one message when ``single`` is set, chunked otherwise."""

        if single or not self.config.features.message_chunking:
            await self.send_single(to, text)
        else:
            await self.send_chunked(to, text, options)
