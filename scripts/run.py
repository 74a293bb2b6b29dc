#!/usr/bin/env python3
"""
Command line entry point for the API test suite.

    python scripts/run.py test --tags @smoke
    python scripts/run.py test --base-url http://localhost:3000 --junit
    python scripts/run.py show-config
"""
import click
import os
import subprocess
import sys
from pathlib import Path

# Add parent directory to path so we can import our modules
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from utils.config_loader import ConfigLoader
from utils.custom_exceptions import ConfigurationError
from utils.logger import logger, set_log_level


@click.group()
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], case_sensitive=False),
              help='Log level for this process and the behave run')
@click.option('--config-dir', default=None, help='Directory holding config.ini')
@click.pass_context
def cli(ctx, log_level, config_dir):
    """REST API BDD test suite CLI."""
    ctx.ensure_object(dict)
    ctx.obj['LOG_LEVEL'] = set_log_level(log_level)
    ctx.obj['CONFIG_DIR'] = config_dir

    logger.info(f"Starting API test CLI - Log Level: {log_level}")


@cli.command()
@click.argument('feature_paths', nargs=-1)
@click.option('--tags', multiple=True, help='Tag expression, may be repeated (e.g. @smoke, -@wip)')
@click.option('--base-url', help='Override the configured API base URL')
@click.option('--step-timeout', type=float, help='Override the per-step time ceiling in seconds')
@click.option('--junit', is_flag=True, help='Write JUnit XML to output/junit')
@click.option('--dry-run', is_flag=True, help='Resolve steps without sending requests')
@click.pass_context
def test(ctx, feature_paths, tags, base_url, step_timeout, junit, dry_run):
    """Run the behave features and exit non-zero if any scenario fails."""
    env = os.environ.copy()
    env['LOG_LEVEL'] = ctx.obj['LOG_LEVEL']
    if ctx.obj['CONFIG_DIR']:
        env['API_CONFIG_DIR'] = ctx.obj['CONFIG_DIR']
    if base_url:
        env['API_BASE_URL'] = base_url
    if step_timeout:
        env['API_STEP_TIMEOUT'] = str(step_timeout)

    behave_cmd = [sys.executable, "-m", "behave"]
    for tag in tags:
        behave_cmd.extend(["--tags", tag])
    if junit:
        os.makedirs(project_root / "output" / "junit", exist_ok=True)
        behave_cmd.extend(["--junit", "--junit-directory=output/junit"])
    if dry_run:
        behave_cmd.append("--dry-run")
    behave_cmd.extend(feature_paths or ["features/"])

    logger.info(f"Command: {' '.join(behave_cmd)}")
    result = subprocess.run(behave_cmd, cwd=project_root, env=env)

    click.echo(f"\n{'='*50}")
    click.echo("API TEST RUN")
    click.echo(f"{'='*50}")
    click.echo(f"Features: {', '.join(feature_paths) or 'all'}")
    click.echo(f"Tags: {', '.join(tags) or 'behave.ini defaults'}")
    click.echo(f"Result: {'✓ Passed' if result.returncode == 0 else '✗ Failed'}")
    click.echo(f"{'='*50}")

    sys.exit(result.returncode)


@cli.command('show-config')
@click.pass_context
def show_config(ctx):
    """Print the API settings the features would run with."""
    try:
        loader = ConfigLoader(ctx.obj['CONFIG_DIR'])
        api_config = loader.get_api_config()
        auth_config = loader.get_auth_config()
    except ConfigurationError as e:
        logger.error(f"Configuration check failed: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"\n{'='*50}")
    click.echo("API CONFIGURATION")
    click.echo(f"{'='*50}")
    click.echo(f"Base URL: {api_config.base_url}")
    click.echo(f"Request timeout: {api_config.timeout}s")
    click.echo(f"Step timeout: {api_config.step_timeout}s")
    click.echo(f"Verify SSL: {api_config.verify_ssl}")
    click.echo(f"Default headers: {api_config.headers}")
    for style, value in (('Bearer token', auth_config.bearer_token),
                         ('API key', auth_config.api_key),
                         ('Basic auth', auth_config.username and auth_config.password)):
        click.echo(f"{style}: {'✓ configured' if value else '✗ not set'}")
    click.echo(f"{'='*50}")


if __name__ == '__main__':
    cli()
