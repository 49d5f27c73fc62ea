import click


@click.group()
def main() -> None:
    """chatrelay - Streaming chat relay between an AI agent and its clients."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from CHATRELAY_HOST or 0.0.0.0).")
@click.option("--port", default=None, type=int, help="Bind port (default: from CHATRELAY_PORT or 8000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the chat runtime server."""
    import uvicorn

    from chatrelay.chat_runtime.settings import RelaySettings

    settings = RelaySettings()

    uvicorn.run(
        "chatrelay.chat_runtime.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
        # Turns get graceful_shutdown_timeout to drain, plus a buffer for
        # force-cancelled turns and the engine teardown.
        timeout_graceful_shutdown=settings.graceful_shutdown_timeout + 30,
    )


@main.command()
@click.argument("chat_id")
@click.option("--url", envvar="CHATRELAY_URL", default="http://localhost:8000", help="Chat runtime URL.")
@click.option("--token", envvar="CHATRELAY_AUTH_TOKEN", default=None, help="Bearer token for the runtime.")
def chat(chat_id: str, url: str, token: str | None) -> None:
    """Chat interactively in CHAT_ID (empty line or Ctrl-D to quit)."""
    import asyncio

    from chatrelay.chat_runtime.log import setup_logging

    setup_logging("WARNING")
    asyncio.run(_chat_loop(url, chat_id, token))


async def _chat_loop(url: str, chat_id: str, token: str | None) -> None:
    import asyncio

    from chatrelay.chat_client import ChatClient, TurnState

    async with ChatClient(url, chat_id=chat_id, token=token) as client:
        for record in await client.load():
            click.echo(f"{record.role}: {record.content}")

        while True:
            try:
                text = await asyncio.to_thread(click.prompt, "you", default="", show_default=False)
            except click.Abort:
                break
            if not text.strip():
                break

            click.echo("assistant: ", nl=False)
            state = await client.submit(text, on_frame=_render_frame)
            click.echo()
            if state == TurnState.FAILED:
                click.secho(f"error: {client.transcript.error}", fg="red", err=True)


def _render_frame(frame) -> None:
    from chatrelay.protocol.frames import TokenFrame, ToolEndFrame, ToolStartFrame

    if isinstance(frame, TokenFrame):
        click.echo(frame.token, nl=False)
    elif isinstance(frame, ToolStartFrame):
        click.secho(f"\n[{frame.name}] {frame.input!r} ...", fg="cyan")
    elif isinstance(frame, ToolEndFrame):
        click.secho(f"[{frame.name}] -> {frame.output!r}", fg="cyan")


if __name__ == "__main__":
    main()
