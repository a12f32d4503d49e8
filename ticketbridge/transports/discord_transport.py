"""Discord transport using discord.py."""

from __future__ import annotations

import asyncio
import io
from typing import Any, Awaitable, Callable

import discord

from ticketbridge.attachments.config import ATTACHMENT_CONFIG, AttachmentConfig
from ticketbridge.attachments.models import Attachment, FileBuffer
from ticketbridge.config import DiscordConfig
from ticketbridge.core.retry import RetryPolicy, retry
from ticketbridge.forwarding import Author, ForwardOutcome, ForwardStatus, MessageForwarder
from ticketbridge.utils.logging import get_logger

log = get_logger(__name__)

DISCORD_MESSAGE_LIMIT = 2000
EMBED_DESCRIPTION_LIMIT = 4096

TICKET_EMBED_COLOR = 0xFF5241
TICKET_NEXT_STEPS = (
    "Our support team will respond here shortly. Please monitor this thread for updates."
)
STARTER_FETCH_POLICY = RetryPolicy(max_attempts=6, base_delay=2000, max_delay=10000)


def split_content(content: str, limit: int = DISCORD_MESSAGE_LIMIT) -> list[str]:
    """Split text into Discord-sized chunks, preferring line breaks."""
    chunks: list[str] = []
    remaining = content
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining:
        chunks.append(remaining)
    return chunks


class DiscordThread:
    """A Discord thread as seen by the webhook handler."""

    def __init__(self, thread: discord.Thread) -> None:
        self._thread = thread

    @property
    def id(self) -> str:
        return str(self._thread.id)

    async def send(self, content: str | None, files: list[FileBuffer]) -> Any:
        # discord.File wraps a stream that is consumed on send; build fresh ones per call
        discord_files = [discord.File(io.BytesIO(b.data), filename=b.filename) for b in files]
        chunks = split_content(content or "")
        if not chunks and not discord_files:
            return None

        if not chunks:
            return await self._thread.send(files=discord_files)

        sent = None
        for i, chunk in enumerate(chunks):
            kwargs: dict[str, Any] = {"content": chunk}
            # Files ride on the last chunk
            if i == len(chunks) - 1 and discord_files:
                kwargs["files"] = discord_files
            sent = await self._thread.send(**kwargs)
        return sent

    async def archive(self) -> None:
        await self._thread.edit(archived=True)


class DiscordTransport:
    def __init__(
        self,
        config: DiscordConfig,
        forwarder: MessageForwarder,
        *,
        client: discord.Client | None = None,
        attachment_config: AttachmentConfig = ATTACHMENT_CONFIG,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._sleep = sleep
        self._forwarder = forwarder
        self._attachment_config = attachment_config
        self._task: asyncio.Task[None] | None = None

        if client is None:
            intents = discord.Intents.default()
            intents.message_content = True
            intents.guilds = True
            client = discord.Client(intents=intents)
        self._client = client
        self._setup_handlers()

    @property
    def client(self) -> discord.Client:
        return self._client

    def _setup_handlers(self) -> None:
        @self._client.event
        async def on_ready() -> None:
            log.info("discord_connected", user=str(self._client.user))

        @self._client.event
        async def on_message(message: discord.Message) -> None:
            await self.handle_message(message)

        @self._client.event
        async def on_thread_create(thread: discord.Thread) -> None:
            await self.handle_thread_create(thread)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._task = asyncio.create_task(
            self._client.start(self._config.token),
            name="discord-client",
        )
        log.info("discord_transport_starting")

    async def stop(self) -> None:
        await self._client.close()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception:
                log.exception("discord_client_task_failed")
            self._task = None
        log.info("discord_transport_stopped")

    # ------------------------------------------------------------------
    # Chat gateway
    # ------------------------------------------------------------------

    async def get_thread(self, thread_id: str) -> DiscordThread | None:
        channel_id = int(thread_id)
        channel = self._client.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self._client.fetch_channel(channel_id)
            except (discord.NotFound, discord.Forbidden):
                log.warning("discord_thread_unreachable", thread_id=thread_id)
                return None

        if not isinstance(channel, discord.Thread):
            log.error("discord_invalid_channel_type", thread_id=thread_id)
            return None
        return DiscordThread(channel)

    # ------------------------------------------------------------------
    # Forum posts
    # ------------------------------------------------------------------

    async def handle_thread_create(self, thread: discord.Thread) -> None:
        """Open a ticket for a new post in a configured forum channel."""
        if thread.parent_id not in self._config.forum_channel_ids:
            return

        if not isinstance(thread.parent, discord.ForumChannel):
            # A text channel listed by mistake
            log.warning("forum_channel_invalid", channel_id=thread.parent_id, thread_id=thread.id)
            return

        log.info("forum_post_detected", thread_id=thread.id, title=thread.name)

        starter = await self._fetch_starter(thread)
        if starter is None or starter.author.bot:
            return

        author = Author(display_name=starter.author.display_name, username=starter.author.name)
        try:
            ticket = await self._forwarder.open_ticket(
                str(thread.id),
                author,
                thread.name,
                starter.content,
                [Attachment.from_discord(a) for a in starter.attachments],
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("ticket_creation_failed", thread_id=thread.id)
            return
        if ticket is None:
            return

        embed = discord.Embed(
            title=f"🎫 Support Ticket #{ticket.friendly_id}",
            description=f"**{thread.name}**\n\n{starter.content}"[:EMBED_DESCRIPTION_LIMIT],
            color=TICKET_EMBED_COLOR,
        )
        embed.add_field(name="🔄 Next Steps", value=TICKET_NEXT_STEPS, inline=False)
        try:
            await thread.send(embed=embed)
        except discord.HTTPException as e:
            log.warning("ticket_confirmation_failed", thread_id=thread.id, error=str(e))

    async def _fetch_starter(self, thread: discord.Thread) -> discord.Message | None:
        if thread.starter_message is not None:
            return thread.starter_message

        # Forum starter posts share their thread's id and can lag behind the thread event
        outcome = await retry(
            lambda: thread.fetch_message(thread.id),
            STARTER_FETCH_POLICY,
            operation_name="fetch_forum_starter",
            sleep=self._sleep,
        )
        if not outcome.success:
            log.error("forum_starter_unavailable", thread_id=thread.id, error=str(outcome.error))
            return None
        return outcome.value

    # ------------------------------------------------------------------
    # Incoming messages
    # ------------------------------------------------------------------

    async def handle_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return

        channel = message.channel
        if not isinstance(channel, discord.Thread):
            return

        if self._config.guild_ids and message.guild:
            if message.guild.id not in self._config.guild_ids:
                return

        # Forum starter posts share their thread's id and were sent with the ticket
        if message.id == channel.id:
            return

        content = await self._with_quote(message)
        attachments = [Attachment.from_discord(a) for a in message.attachments]

        outcome = await self._forwarder.forward(
            str(channel.id),
            Author(display_name=message.author.display_name, username=message.author.name),
            content,
            attachments,
        )
        await self._give_feedback(message, outcome)

    async def _with_quote(self, message: discord.Message) -> str:
        content = message.content
        reference = message.reference
        if reference is None or reference.message_id is None:
            return content
        try:
            referenced = await message.channel.fetch_message(reference.message_id)
        except discord.HTTPException as e:
            log.warning("discord_reference_fetch_failed", message_id=reference.message_id, error=str(e))
            return content
        return f"> {referenced.content}\n\n{content}"

    async def _give_feedback(self, message: discord.Message, outcome: ForwardOutcome) -> None:
        config = self._attachment_config
        try:
            if outcome.status is ForwardStatus.ATTACHMENTS_UPLOADED:
                await message.add_reaction(config.success_reaction)
            elif outcome.status in (ForwardStatus.UPLOAD_FAILED, ForwardStatus.FAILED):
                await message.add_reaction(config.failure_reaction)
            elif outcome.status is ForwardStatus.UNSUPPORTED and outcome.notice:
                await message.reply(outcome.notice)
        except discord.HTTPException as e:
            log.debug("discord_feedback_failed", status=outcome.status.value, error=str(e))
