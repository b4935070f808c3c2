import asyncio
import typer
from rich.console import Console

from ..config import load_default_settings
from ..services.download import SdkDownloader
from ..ui.log import configure_logging
from ..ui.progress import ProgressManager

app = typer.Typer(add_completion=False, help="Downloads the DataMiner SDK to your local cache.")
console = Console(stderr=True)

def get_downloader() -> SdkDownloader:
    settings = load_default_settings()
    return SdkDownloader(settings, progress_manager=ProgressManager(console))

async def run(downloader: SdkDownloader):
    try:
        await downloader.add_or_update_sdk()
    finally:
        await downloader.close()

@app.command()
def main(
    debug: bool = typer.Option(False, "--debug", help="Indicates the tool should write out debug logging.")
):
    """downloads the DataMiner SDK to your local cache."""
    try:
        logger = configure_logging(debug, console)
    except Exception as e:
        typer.echo(f"Exception on Logger Creation: {e}", err=True)
        raise typer.Exit(code=1)

    try:
        downloader = get_downloader()
        asyncio.run(run(downloader))
    except (Exception, asyncio.CancelledError, KeyboardInterrupt) as e:
        # cancellation is reported like any other failure
        logger.error(f"Exception during Process Run: {e!r}", exc_info=True)
        raise typer.Exit(code=1)

if __name__ == "__main__":
    app()
