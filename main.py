"""Story Context — command line entry point.

    python main.py serve                       run the HTTP API
    python main.py demo                        write the demo story
    python main.py assemble SLUG -i "..."      print the assembled context
    python main.py generate SLUG -i "..."      assemble, then stream a continuation
    python main.py stats SLUG                  print word count and token estimate
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13015")


def _serve(args) -> int:
    import uvicorn

    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())
    print(f"Starting backend on http://localhost:{args.port} ...")
    uvicorn.run("backend.app:app", host=args.host, port=int(args.port), reload=args.reload)
    return 0


def _demo(args) -> int:
    from backend.demo import create_demo_data

    story = create_demo_data()
    print(f"Created demo story '{story.title}' ({story.slug})")
    return 0


def _story_options(slug: str, **kw):
    """ContextOptions for a stored story, or None (reported) when it does not exist."""
    from backend import state

    try:
        return state.store().build_options(slug, kw.pop("input_text", ""), **kw)
    except KeyError:
        print(f"Story not found: {slug}", file=sys.stderr)
        return None


def _assemble(args) -> int:
    from backend import state
    from story_context.pipeline import ContextValidationError, generate_context_messages

    options = _story_options(
        args.slug,
        input_text=args.input,
        model=args.model,
        context_type=args.type,
        target_message_id=args.target,
        force_missing_summaries=args.force,
    )
    if options is None:
        return 1

    config = state.get_settings()
    try:
        messages = asyncio.run(generate_context_messages(
            options, registry=config.registry(), settings=config.engine,
        ))
    except ContextValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps([m.to_wire() for m in messages], indent=2))
        return 0
    for m in messages:
        cached = " [cached]" if m.cache_control else ""
        print(f"--- {m.role}{cached} ---")
        print(m.content)
    return 0


def _generate(args) -> int:
    from backend import state
    from story_context.llm import EchoBackend, HttpChatBackend, LLMError
    from story_context.pipeline import ContextValidationError, generate_context_messages

    config = state.get_settings()
    if args.echo:
        backend = EchoBackend()
        model = args.model or "echo"
    else:
        conn = config.connection(args.connection)
        if conn is None:
            print("No LLM connection configured (add llm_connections to the config or use --echo)",
                  file=sys.stderr)
            return 1
        model = args.model or conn.model
        if not model:
            print(f"No model given and connection '{conn.name}' has no default model", file=sys.stderr)
            return 1
        backend = HttpChatBackend(conn.provider_url, conn.api_key, conn.chat_format)

    options = _story_options(
        args.slug,
        input_text=args.input,
        model=model,
        context_type=args.type,
        target_message_id=args.target,
        force_missing_summaries=args.force,
    )
    if options is None:
        return 1

    async def run():
        messages = await generate_context_messages(
            options, registry=config.registry(), settings=config.engine,
        )
        usage = None
        async for chunk in backend.generate(model, messages):
            if chunk.text:
                print(chunk.text, end="", flush=True)
            if chunk.usage is not None:
                usage = chunk.usage
        print()
        return usage

    try:
        usage = asyncio.run(run())
    except ContextValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except LLMError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 3

    if usage is not None:
        print(
            f"tokens: input={usage.input_tokens} output={usage.output_tokens} "
            f"cache_write={usage.cache_creation_tokens} cache_read={usage.cache_read_tokens}",
            file=sys.stderr,
        )
    return 0


def _stats(args) -> int:
    from backend import state
    from story_context.pipeline import story_stats

    options = _story_options(args.slug, model=args.model)
    if options is None:
        return 1
    config = state.get_settings()
    stats = story_stats(options, registry=config.registry(), settings=config.engine)
    print(stats.model_dump_json(indent=2))
    return 0


def _add_context_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("slug")
    parser.add_argument("-i", "--input", default="", help="Author direction or question")
    parser.add_argument("-m", "--model", default=None)
    parser.add_argument("-t", "--type", default="story", choices=["story", "query", "smart-story"])
    parser.add_argument("--target", default=None, help="Message id the context is generated for")
    parser.add_argument("--force", action="store_true", help="Assemble despite missing summaries")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Story context assembly")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: DATA_DIR or ./data)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log assembly detail to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=HOST)
    serve.add_argument("--port", default=PORT)
    serve.add_argument("--reload", action="store_true")
    serve.set_defaults(handler=_serve)

    demo = sub.add_parser("demo", help="Clean and create the demo story")
    demo.set_defaults(handler=_demo)

    assemble = sub.add_parser("assemble", help="Print the assembled context for a story")
    _add_context_args(assemble)
    assemble.add_argument("--json", action="store_true", help="Print provider-ready JSON")
    assemble.set_defaults(handler=_assemble)

    generate = sub.add_parser("generate", help="Assemble the context and stream a continuation")
    _add_context_args(generate)
    generate.add_argument("-c", "--connection", default=None,
                          help="Name of an llm_connections entry (default: the first)")
    generate.add_argument("--echo", action="store_true", help="Echo the direction back; no network")
    generate.set_defaults(handler=_generate)

    stats = sub.add_parser("stats", help="Print word count and token estimate")
    stats.add_argument("slug")
    stats.add_argument("-m", "--model", default=None)
    stats.set_defaults(handler=_stats)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command != "serve":
        from backend import state
        data_dir = args.data_dir or Path(os.getenv("DATA_DIR", str(ROOT / "data")))
        state.init_state(data_dir)

    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
