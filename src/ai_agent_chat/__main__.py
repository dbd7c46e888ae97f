import asyncio
import contextlib
import signal

from dotenv import load_dotenv
from loguru import logger

from ai_agent_chat.app_config import load_json_config, parse_app_config, resolve_runtime_env
from ai_agent_chat.bootstrap import bootstrap_runtime
from ai_agent_chat.console import ConsoleRenderer
from ai_agent_chat.engine import ChatEngine
from ai_agent_chat.shell import ChatShell


@contextlib.contextmanager
def _sigint_stops(engine: ChatEngine):
    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, engine.stop_generating)
        installed = True
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    runtime = bootstrap_runtime(app)
    engine = runtime.engine

    if not runtime.settings.provider_settings.has_api_key:
        env = resolve_runtime_env()
        logger.warning(f"{env.provider_env_var} is not set; replies will fail until it is configured.")

    engine.subscribe(ConsoleRenderer())
    shell = ChatShell(engine, runtime.settings)

    settings = runtime.settings.provider_settings
    print("ai-agent-chat (type 'exit' to quit, '/help' for commands)")
    print(f"Model: {settings.model} (temperature {settings.temperature}, max tokens {settings.max_tokens})")
    print(f"Sessions: {runtime.store.path} ({len(engine.sessions)} saved)")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                with _sigint_stops(engine):
                    await shell.handle_line(trimmed)
                print()
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        await engine.shutdown()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
