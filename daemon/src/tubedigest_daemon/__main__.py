"""Main entry point for TubeDigest daemon - just wiring, no logic."""

import asyncio
import sys
from typing import Optional

import typer
import uvicorn
from dotenv import load_dotenv
from rich.console import Console

from .api import create_app
from .config import Config, config_dir
from .database import init_db
from .defaults import ensure_config
from .fetchers import CaptionExtractor, YouTubeSource
from .monitor import ChannelMonitor
from .notifier import EmailNotifier
from .storage import Storage
from .summarizer import DigestSummarizer

# Load environment variables from ~/.config/tubedigest/.env
dotenv_path = config_dir() / ".env"
if dotenv_path.exists():
    load_dotenv(dotenv_path)

console = Console()


def build_components(config: Config) -> dict:
    """Create the pipeline components for one daemon run."""
    console.print("🔧 Initializing components...")
    init_db()
    storage = Storage()

    source = YouTubeSource(config=config)
    extractor = CaptionExtractor(source, languages=config.caption_languages)
    summarizer = DigestSummarizer(config.llm_config())
    notifier = EmailNotifier(config.notification_config())

    monitor = ChannelMonitor(
        channels=config.channels,
        source=source,
        extractor=extractor,
        summarizer=summarizer,
        storage=storage,
        notifier=notifier,
        max_results=config.max_results,
        notification_recipient=config.notification_recipient,
        console=console,
    )
    return {
        "storage": storage,
        "source": source,
        "extractor": extractor,
        "summarizer": summarizer,
        "notifier": notifier,
        "monitor": monitor,
    }


async def close_components(components: dict) -> None:
    await components["source"].aclose()
    await components["notifier"].aclose()
    components["storage"].close()


async def run_once(config: Config) -> int:
    """Run a single sweep of every channel.

    Returns:
        Process exit code
    """
    components = build_components(config)
    try:
        cycle = await components["monitor"].check_all_channels()
    finally:
        await close_components(components)

    # Exit with error if nothing got through
    if (cycle.errors or cycle.total_failed) and cycle.total_processed == 0:
        return 1
    return 0


async def run_service(config: Config, interval: int) -> None:
    """Poll channels in the background and serve the API until signalled."""
    components = build_components(config)
    monitor = components["monitor"]

    app = create_app(
        monitor=monitor,
        storage=components["storage"],
        extractor=components["extractor"],
        summarizer=components["summarizer"],
        notifier=components["notifier"],
    )

    polling = monitor.start_polling(interval)
    app.state.polling = polling
    console.print(
        f"[green]✅ Polling started - checking channels every {interval} minutes[/green]"
    )

    console.print(f"[yellow]🌐 Starting API server on port {config.api_port}...[/yellow]")
    api_config = uvicorn.Config(
        app,
        host=config.api_host,
        port=config.api_port,
        log_level="warning",  # Reduce noise
        access_log=False,  # Request middleware does the logging
    )
    api_server = uvicorn.Server(api_config)
    console.print(
        f"[green]✅ API server running on http://{config.api_host}:{config.api_port}[/green]"
    )
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    # uvicorn owns SIGINT/SIGTERM and returns from serve() on shutdown
    try:
        await api_server.serve()
    finally:
        console.print("\n[yellow]Shutting down, stopping polling...[/yellow]")
        await polling.stop()
        await close_components(components)


app = typer.Typer()


@app.command()
def main(
    once: bool = typer.Option(False, "--once", help="Check every channel once and exit"),
    interval: Optional[int] = typer.Option(
        None, "--interval", help="Polling interval in minutes (overrides config)"
    ),
) -> None:
    """Main entry point for TubeDigest daemon."""
    try:
        # Ensure config files exist
        ensure_config()

        console.print("📂 Loading configuration...")
        config = Config.from_file()
        if interval is not None:
            config.poll_interval = interval
        config.validate()
    except Exception as e:
        console.print(f"[bold red]❌ Fatal error: {e}[/bold red]")
        sys.exit(1)

    if once:
        console.print("[bold blue]Starting TubeDigest daemon (--once mode)[/bold blue]")
        try:
            exit_code = asyncio.run(run_once(config))
        except Exception as e:
            console.print(f"[bold red]❌ Fatal error: {e}[/bold red]")
            sys.exit(1)
        sys.exit(exit_code)

    console.print(
        f"[bold blue]Starting TubeDigest daemon (every {config.poll_interval} minutes)[/bold blue]"
    )
    try:
        asyncio.run(run_service(config, config.poll_interval))
    except Exception as e:
        console.print(f"[bold red]❌ Fatal error: {e}[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    app()
