"""
PodInsight CLI
Command-line interface for common operations.
"""

import asyncio
import json
import logging
import sys

import click


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def cli(verbose: bool):
    """PodInsight - Podcast transcripts, summaries and insights"""
    _configure_logging(verbose)


@cli.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", "-p", type=int, default=None, help="API server port")
def serve(host, port):
    """Start the PodInsight API server."""
    import uvicorn

    from .config import settings

    settings.ensure_directories()
    host = host or settings.api_host
    port = port or settings.api_port
    click.echo(f"Starting PodInsight API on {host}:{port}...")
    uvicorn.run("podinsight.main:app", host=host, port=port)


@cli.command()
@click.argument("episode_id")
@click.argument("audio_url")
@click.option("--caption-url", help="Pre-existing transcript/captions URL")
@click.option("--title", help="Episode title")
@click.option("--kind", "-k", type=click.Choice(["transcript", "summary", "insights"]), default="summary")
@click.option("--level", "-l", type=click.Choice(["quick", "deep"]), default="quick", help="Summary level")
@click.option("--language", default="en", help="Language code")
@click.option("--wait/--no-wait", default=True, help="Run until the job settles")
def request(episode_id, audio_url, caption_url, title, kind, level, language, wait):
    """Request an artifact for an episode."""
    from .config import settings
    from .models import EpisodeSource
    from .pipeline import PipelineFacade

    settings.ensure_directories()
    source = EpisodeSource(
        episode_id=episode_id,
        audio_url=audio_url,
        caption_url=caption_url,
        title=title,
    )

    async def _run():
        pipeline = PipelineFacade()
        response = await pipeline.request_artifact(source, kind, level=level, language=language)
        click.echo(f"Requested {kind}: {response.status}")
        if wait:
            # Background jobs live in this process, so wait for them here
            await pipeline.drain()
        return pipeline.get_status(episode_id, language)

    status = asyncio.run(_run())
    _echo_json(status.model_dump())

    failed = bool(status.store_error) or status.transcript_status == "failed" or any(
        entry.status == "failed" for entry in status.summaries.values()
    )
    if wait and failed:
        sys.exit(1)


@cli.command()
@click.argument("feed_url")
@click.option("--limit", "-n", default=3, help="Latest N episodes")
@click.option("--kind", "-k", type=click.Choice(["transcript", "summary", "insights"]), default="summary")
@click.option("--level", "-l", type=click.Choice(["quick", "deep"]), default="quick", help="Summary level")
@click.option("--language", default=None, help="Language code (default: the feed's)")
def feed(feed_url, limit, kind, level, language):
    """Request artifacts for the latest episodes of a podcast feed."""
    from .config import settings
    from .pipeline import PipelineFacade
    from .podcast.rss import parse_feed

    settings.ensure_directories()
    podcast = parse_feed(feed_url, limit=limit)
    click.echo(f"{podcast.title}: {len(podcast.episodes)} episodes")
    sources = [(s, language or s.language or "en") for s in podcast.sources()]

    async def _run():
        pipeline = PipelineFacade()
        for source, lang in sources:
            response = await pipeline.request_artifact(source, kind, level=level, language=lang)
            click.echo(f"  {(source.title or source.episode_id)[:60]}: {response.status}")
        await pipeline.drain()
        return [pipeline.get_status(s.episode_id, lang) for s, lang in sources]

    for status in asyncio.run(_run()):
        if status.store_error:
            click.echo(f"{status.episode_id}: store error: {status.store_error}")
            continue
        entry = status.summaries.get("insights" if kind == "insights" else level)
        artifact_status = status.transcript_status if kind == "transcript" else entry.status
        click.echo(f"{status.episode_id}: {artifact_status}")


@cli.command()
@click.argument("episode_id")
@click.option("--language", default="en", help="Language code")
def status(episode_id, language):
    """Show transcript and summary status for an episode."""
    from .pipeline import PipelineFacade

    pipeline = PipelineFacade()
    status = pipeline.get_status(episode_id, language)
    _echo_json(status.model_dump())
    if status.store_error:
        sys.exit(1)


@cli.command()
@click.argument("episode_id")
@click.argument("question")
@click.option("--language", default="en", help="Language code")
def ask(episode_id, question, language):
    """Ask a question about an episode that already has a transcript."""
    from .exceptions import ContextUnavailableError, PodInsightError
    from .pipeline import PipelineFacade

    pipeline = PipelineFacade()
    try:
        answer = asyncio.run(pipeline.ask(episode_id, question, language=language))
    except (ValueError, ContextUnavailableError) as e:
        raise click.ClickException(str(e))
    except PodInsightError as e:
        raise click.ClickException(f"Could not answer: {e}")
    click.echo(answer)


@cli.command()
@click.option("--older-than", type=float, default=None, help="Minutes without progress (default: settings)")
def recover(older_than):
    """Fail jobs left queued or running by a process that died."""
    from .db import create_store
    from .jobs import JobStateMachine

    report = JobStateMachine(create_store()).recover_stale(max_age_minutes=older_than)
    click.echo(f"Reset {len(report.transcripts)} transcripts and {len(report.summaries)} summaries")
    for key in report.transcripts + report.summaries:
        click.echo(f"  {'/'.join(key)}")


def main():
    cli()


if __name__ == "__main__":
    main()
