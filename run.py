#!/usr/bin/env python3
"""
WardScan - Policy-Governed Web Vulnerability Scanner

Main entry point for the command line.
"""

import asyncio
import json
import logging
import sys

import click
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from wardscan import __version__
from wardscan.config import BaseConfig, ConfigError, CrawlerConfig, Mode, ScanConfig, load_config

SEVERITY_COLORS = {
    'critical': 'red',
    'high': 'red',
    'medium': 'yellow',
    'low': 'green',
    'info': 'blue',
}


def configure_logging(verbose: bool):
    level = logging.DEBUG if verbose else getattr(logging, BaseConfig.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


def build_config(url, config_path, mode, depth, concurrency, rps, timeout, exclude, no_robots) -> ScanConfig:
    """Merge the optional YAML file with command line overrides."""
    overrides = {
        'target': url,
        'mode': mode,
        'max_depth': depth,
        'concurrency': concurrency,
        'rps': rps,
        'timeout': timeout,
        'exclude_paths': list(exclude) if exclude else None,
    }
    if config_path:
        config = load_config(config_path, **overrides)
    else:
        config = ScanConfig(target=url).with_overrides(**overrides).validate()
    if no_robots:
        config = config.with_overrides(
            crawler=CrawlerConfig(respect_robots=False, cache_ttl_minutes=config.crawler.cache_ttl_minutes)
        )
    return config


@click.group()
@click.version_option(version=__version__, prog_name='WardScan')
def cli():
    """WardScan - Policy-Governed Web Vulnerability Scanner"""
    pass


@cli.command()
@click.argument('url')
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='YAML scan configuration')
@click.option('--mode', type=click.Choice([m.value for m in Mode], case_sensitive=False),
              help='Scan mode (default SAFE)')
@click.option('--depth', type=int, help='Maximum crawl depth')
@click.option('--concurrency', type=int, help='Pages analysed in parallel')
@click.option('--rps', type=float, help='Page requests per second')
@click.option('--timeout', type=float, help='Per-request timeout in seconds')
@click.option('--exclude', multiple=True, help='Exclusion rule (prefix, glob or re:regex)')
@click.option('--no-robots', is_flag=True, help='Ignore robots.txt')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write the JSON report here')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
def scan(url, config_path, mode, depth, concurrency, rps, timeout, exclude, no_robots, output, verbose):
    """Run a scan against a target URL."""
    from wardscan.scanner.core.coordinator import ScanCoordinator

    configure_logging(verbose)

    try:
        config = build_config(url, config_path, mode, depth, concurrency, rps, timeout, exclude, no_robots)
    except ConfigError as e:
        click.secho(f"Invalid configuration: {e}", fg='red', err=True)
        sys.exit(2)

    click.echo(f"""
    WardScan CLI Scanner

    Target:      {config.target}
    Mode:        {config.mode.value}
    Max Depth:   {config.max_depth}
    Concurrency: {config.concurrency}
    RPS:         {config.rps}
    Robots:      {'respected' if config.crawler.respect_robots else 'ignored'}
    """)

    def on_progress(fraction, phase, done, total):
        if verbose and total:
            click.echo(f"  [{int(fraction * 100):3d}%] {phase} {done}/{total}")

    coordinator = ScanCoordinator(config, progress_callback=on_progress)

    click.echo("Starting scan...")
    click.echo("-" * 50)

    try:
        report = asyncio.run(coordinator.run())
    except ConfigError as e:
        click.secho(f"Invalid configuration: {e}", fg='red', err=True)
        sys.exit(2)
    except KeyboardInterrupt:
        click.echo("\nScan interrupted.")
        sys.exit(130)

    for result in report.findings:
        severity = result.severity.value
        if severity in ('critical', 'high', 'medium'):
            click.secho(f"  [!] {severity.upper()} - {result.issue_type.value} at {result.url}",
                        fg=SEVERITY_COLORS[severity])

    click.echo("-" * 50)
    click.echo("\nScan completed!")
    click.echo(f"Pages analysed: {len(report.urls)}")

    if output:
        with open(output, 'w') as f:
            json.dump(report.to_dict(), f, indent=2)
        click.echo(f"Report saved to: {output}")

    # Print summary
    counts = report.severity_counts()
    click.echo("\n" + "=" * 50)
    click.echo("VULNERABILITY SUMMARY")
    click.echo("=" * 50)
    click.secho(f"  Critical: {counts['critical']}", fg='red')
    click.secho(f"  High:     {counts['high']}", fg='red')
    click.secho(f"  Medium:   {counts['medium']}", fg='yellow')
    click.secho(f"  Low:      {counts['low']}", fg='green')
    click.secho(f"  Info:     {counts['info']}", fg='blue')
    click.echo("-" * 50)
    click.echo(f"  Total:    {len(report.findings)}")

    stats = report.stats
    click.echo("\nTELEMETRY")
    click.echo(f"  Requests:        {stats.requests_total}")
    click.echo(f"  Retries:         {stats.retries_total}")
    click.echo(f"  Max concurrency: {stats.max_observed_concurrency}")
    click.echo(f"  Avg latency:     {stats.avg_latency_ms} ms")


if __name__ == '__main__':
    cli()
