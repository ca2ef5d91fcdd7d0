"""Command line front-end: svector chat | repl | models | vision | upload."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from rich.logging import RichHandler

from . import __version__
from .config import LOG_LEVEL_ENV, default_environ
from .core.client import Client
from .core.errors import SVECTORError
from .core.session import ChatSession
from .ui.interface import UI
from .utils.files import image_to_data_url

DEFAULT_MODEL = "spec-3-turbo"

logger = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    list(map(root.removeHandler, root.handlers[:]))
    root.addHandler(RichHandler(rich_tracebacks=True))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="svector", description="SVECTOR Spec-Chat API from the terminal")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--api-key", help="API key (default: $SVECTOR_API_KEY)")
    parser.add_argument("--base-url", help="API base URL (default: $SVECTOR_BASE_URL or https://spec-chat.tech)")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
    parser.add_argument("--log-level", help=f"Logging level (default: ${LOG_LEVEL_ENV} or WARNING)")

    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="Send one prompt and print the reply")
    chat.add_argument("prompt")
    chat.add_argument("--model", default=DEFAULT_MODEL)
    chat.add_argument("--system", help="System instructions")
    chat.add_argument("--temperature", type=float)
    chat.add_argument("--max-tokens", type=int)
    chat.add_argument("--file-id", action="append", default=[], help="Uploaded file to ground the answer on")
    chat.add_argument("--no-stream", action="store_true", help="Wait for the full reply instead of streaming")

    repl = sub.add_parser("repl", help="Interactive chat session")
    repl.add_argument("--model", default=DEFAULT_MODEL)
    repl.add_argument("--system", help="System instructions")
    repl.add_argument("--temperature", type=float)

    sub.add_parser("models", help="List available models")

    vision = sub.add_parser("vision", help="Analyze an image (URL, local path or --file-id)")
    vision.add_argument("image", nargs="?", help="Image URL or local path")
    vision.add_argument("--file-id", help="Analyze a previously uploaded file")
    vision.add_argument("--prompt")
    vision.add_argument("--model")
    vision.add_argument("--detail", choices=("auto", "low", "high"))
    vision.add_argument("--confidence", action="store_true", help="Ask for a confidence score")

    upload = sub.add_parser("upload", help="Upload a file for retrieval")
    upload.add_argument("path")
    upload.add_argument("--purpose", default="rag")
    upload.add_argument("--knowledge-id", help="Also add the file to this knowledge collection")

    return parser


# =============================================================================
# Commands
# =============================================================================

async def cmd_chat(client: Client, ui: UI, args: argparse.Namespace) -> None:
    files = [{"type": "file", "id": file_id} for file_id in args.file_id] or None
    if args.no_stream:
        response = await client.conversations.create(
            model=args.model, input=args.prompt, instructions=args.system,
            temperature=args.temperature, max_tokens=args.max_tokens, files=files,
        )
        ui.show_markdown(args.model, response.output)
        return

    stream = await client.conversations.create_stream(
        model=args.model, input=args.prompt, instructions=args.system,
        temperature=args.temperature, max_tokens=args.max_tokens, files=files,
    )

    async def chunks():
        async for chunk in stream:
            yield chunk.content

    await ui.stream_markdown(args.model, chunks())


async def cmd_repl(client: Client, ui: UI, args: argparse.Namespace) -> None:
    session = ChatSession(client, args.model, instructions=args.system, temperature=args.temperature)
    ui.header(f"svector {__version__}", "Commands: /model NAME, /reset, /exit")

    while True:
        user_input = (await ui.get_input()).strip()
        if not user_input:
            continue
        if user_input in ("/exit", "/quit"):
            break
        if user_input == "/reset":
            session.reset()
            ui.console.print("[yellow]Conversation cleared.[/]")
            continue
        if user_input.startswith("/model"):
            name = user_input[len("/model"):].strip()
            if name:
                session.set_model(name)
            ui.console.print(f"[cyan]Model: {session.model}[/]")
            continue

        try:
            await ui.stream_markdown(session.model, session.send(user_input))
        except SVECTORError as e:
            # A failed turn does not end the session
            ui.show_error(e)


async def cmd_models(client: Client, ui: UI, args: argparse.Namespace) -> None:
    ui.show_models(await client.models.list())


async def cmd_vision(client: Client, ui: UI, args: argparse.Namespace) -> None:
    source = {}
    if args.file_id:
        source["file_id"] = args.file_id
    elif args.image and os.path.exists(args.image):
        source["image_base64"] = await image_to_data_url(args.image)
    elif args.image:
        source["image_url"] = args.image
    else:
        raise SystemExit("vision: pass an image URL, a local path or --file-id")

    analyze = client.vision.analyze_with_confidence if args.confidence else client.vision.analyze
    with ui.console.status("Analyzing image..."):
        result = await analyze(prompt=args.prompt, model=args.model, detail=args.detail, **source)

    ui.show_markdown("Vision", result.analysis)
    if result.confidence is not None:
        ui.console.print(f"[bold]Confidence:[/] {result.confidence}%")


async def cmd_upload(client: Client, ui: UI, args: argparse.Namespace) -> None:
    uploaded = await client.files.create_from_path(args.path, purpose=args.purpose)
    ui.show_msg("Uploaded", f"file_id: [bold]{uploaded.file_id}[/]", color="green")

    if args.knowledge_id:
        added = await client.knowledge.add_file(args.knowledge_id, uploaded.file_id)
        ui.show_msg("Knowledge", added.message or added.status or "File added", color="green")


COMMANDS = {
    "chat": cmd_chat,
    "repl": cmd_repl,
    "models": cmd_models,
    "vision": cmd_vision,
    "upload": cmd_upload,
}


async def _run(args: argparse.Namespace, ui: UI) -> None:
    async with Client(api_key=args.api_key, base_url=args.base_url, timeout=args.timeout) as client:
        logger.debug("Using %r", client)
        await COMMANDS[args.command](client, ui, args)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.log_level or default_environ(LOG_LEVEL_ENV) or "WARNING")

    ui = UI()
    try:
        asyncio.run(_run(args, ui))
    except SVECTORError as e:
        ui.show_error(e)
        return 1
    except KeyboardInterrupt:
        ui.console.print("\n[yellow]Interrupted.[/]")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
