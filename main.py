# main.py
import argparse
import sys

from loguru import logger

from agent import AgentOrchestrator
from config_home import load_settings
from logging_setup import configure_logging
from models import load_models_json
from router import BackendRouter
from session import ChatSession
from stores import ConfigStore, MessageStore
from tools.device import UnavailableDeviceController
from tools.registry import ToolRegistry


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="lilah - conversational assistant with local and remote model backends"
    )
    parser.add_argument("--db", help="SQLite database path (default: $LILAH_DB_PATH or ~/.lilah/lilah.db)")
    parser.add_argument("--models", help="Import model configs from a models.json file")
    parser.add_argument("--activate", metavar="NAME_OR_ID", help="Make a stored model config the active one")
    parser.add_argument("--list-models", action="store_true", help="List stored model configs and exit")
    parser.add_argument("--list-tools", action="store_true", help="List available tools and exit")
    parser.add_argument("--conversation", default="default", help="Conversation id")
    parser.add_argument("--query", help="Single-shot question to answer (optional)")
    parser.add_argument("--clear", action="store_true", help="Delete the conversation history and exit")
    parser.add_argument("--log-level", help="DEBUG/INFO/WARNING/... (default: $LILAH_LOG_LEVEL)")
    return parser


def format_models(configs) -> str:
    if not configs:
        return "No model configurations stored. Import some with --models <path>."
    lines = []
    for c in configs:
        mark = "*" if c.is_active else " "
        target = c.model_path if c.kind.value == "local" else c.resolved_model()
        lines.append(f"{mark} {c.id:<24} {c.kind.value:<7} {c.name} [{target}]")
    return "\n".join(lines)


def format_tools(tools: ToolRegistry) -> str:
    lines = []
    for name in sorted(tools.list_tools()):
        spec = tools.describe(name) or {}
        lines.append(f"{name:<20} {spec.get('description', '')}")
    return "\n".join(lines)


def render(result) -> str:
    return result.value if result.ok else f"[error] {result.error}"


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(args.log_level or settings.log_level, log_file=settings.log_file)

    configs = ConfigStore(args.db or settings.db_path)
    messages = MessageStore(args.db or settings.db_path)
    router = BackendRouter(configs, http_timeout=settings.http_timeout)
    tools = ToolRegistry(UnavailableDeviceController(), timeout=settings.tool_timeout)

    try:
        if not args.models and not configs.list() and settings.models_json.exists():
            try:
                n = configs.import_models(load_models_json(str(settings.models_json)))
            except (OSError, ValueError) as e:
                logger.error("Could not import default model config '{}': {}", settings.models_json, e)
            else:
                logger.info("Imported {} model config(s) from '{}'", n, settings.models_json)

        if args.models:
            try:
                n = configs.import_models(load_models_json(args.models))
            except (OSError, ValueError) as e:
                print(f"[error] {e}")
                return 1
            print(f"Imported {n} model config(s) from {args.models}")

        if args.activate:
            found = configs.find(args.activate)
            if found is None:
                print(f"[error] No model configuration named '{args.activate}'")
                return 1
            res = router.activate(found.id)
            if not res.ok:
                print(f"[error] {res.error}")
                return 1
            print(f"Active model: {found.name}")

        setup_only = bool(args.models or args.activate)

        if args.list_models:
            print(format_models(configs.list()))
            return 0
        if args.list_tools:
            print(format_tools(tools))
            return 0

        if setup_only and not (args.query or args.clear):
            return 0

        orchestrator = AgentOrchestrator(router, tools, allow_brace_fallback=not settings.strict_tool_calls)
        session = ChatSession(orchestrator, messages, conversation_id=args.conversation)
        try:
            if args.clear:
                n = session.clear()
                print(f"Cleared {n} message(s) from '{args.conversation}'")
                return 0

            if args.query:
                result = session.send(args.query)
                print(render(result))
                return 0 if result.ok else 1

            return repl(session, configs)
        finally:
            orchestrator.close()
    finally:
        tools.close()
        router.close()
        messages.close()
        configs.close()


def repl(session: ChatSession, configs: ConfigStore) -> int:
    active = configs.get_active()
    if active is not None:
        print(f"Model: {active.name} ({active.kind.value}) | Conversation: {session.conversation_id}")
    else:
        print("No active model configuration. Use --models and --activate to set one up.")
    print("Enter your message (Ctrl+C to exit)")

    while True:
        try:
            q = input("you> ").strip()
        except (KeyboardInterrupt, EOFError, OSError):
            print("bye!")
            break
        if not q:
            continue
        try:
            ans = render(session.send(q))
        except Exception as e:
            logger.exception("REPL turn crashed: {}", e)
            ans = f"[error] {e}"
        print(f"assistant> {ans}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
