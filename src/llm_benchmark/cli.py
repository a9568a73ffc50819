"""
Command-line interface for the LLM Benchmark Toolkit.
"""

import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import click

from .analysis import ANALYSIS_TYPES, AnalysisReport, BenchmarkAnalyzer
from .backoff import BackoffHandler
from .capacity import CapacityGuard
from .client import BedrockInferenceClient
from .config import BenchmarkSettings, ConfigManager, load_config_with_auto_discovery
from .core import BenchmarkProgress, BenchmarkRunner
from .dataset import DatasetLoader, extract_test_cases, load_benchmark_config
from .errors import BenchmarkError, DatasetValidationError, ParseError
from .models import BenchmarkConfig, BenchmarkRun, RunStatus
from .storage import StorageManager
from .logging import BenchmarkLogger, ErrorReporter, setup_logging, get_logger


logger = get_logger(__name__)


def setup_progress_callback(verbose: bool = False):
    """Create a progress callback that echoes progress every 5% (or every cell when verbose)."""
    last_reported_percentage = -5

    def progress_callback(progress: BenchmarkProgress):
        nonlocal last_reported_percentage

        completion_rate = progress.completion_rate
        if not verbose and int(completion_rate) < last_reported_percentage + 5:
            return

        click.echo(f"Progress: {progress.processed_items}/{progress.total_items} "
                   f"({completion_rate:.1f}%) - "
                   f"Success: {progress.success_rate:.1f}% - "
                   f"Elapsed: {progress.elapsed_time:.1f}s")

        remaining_time = progress.estimated_remaining_time
        if remaining_time:
            click.echo(f"Estimated remaining time: {remaining_time:.1f}s")

        last_reported_percentage = int(completion_rate)

    return progress_callback


async def execute_benchmark(
    settings: BenchmarkSettings,
    benchmark_logger: BenchmarkLogger,
    storage_manager: StorageManager,
    config: BenchmarkConfig,
    region: str,
    verbose: bool = False
) -> BenchmarkRun:
    """Run a benchmark through Bedrock with the configured retry and capacity policy."""
    backoff_handler = BackoffHandler(
        base_delay=settings.base_delay,
        max_delay=settings.max_delay,
        max_retries=settings.max_retries
    )

    async with BedrockInferenceClient(
        region=region,
        aws_profile=settings.aws_profile,
        backoff_handler=backoff_handler
    ) as client:
        runner = BenchmarkRunner(
            store=storage_manager,
            capacity_guard=CapacityGuard.from_settings(client, settings),
            default_parameters=settings.default_model_params,
            progress_callback=setup_progress_callback(verbose),
            progress_logger=benchmark_logger.get_progress_logger(),
            error_reporter=ErrorReporter(benchmark_logger.get_logger("errors"))
        )
        return await runner.run_benchmark(config, credential_ref=settings.aws_profile)


def echo_report(report: AnalysisReport):
    """Print an analysis report in human-readable form."""
    click.echo(f"Analysis ({report.analysis_type}) of run {report.run_id}")

    click.echo("\nRankings:")
    for ranking in report.rankings:
        click.echo(f"  {ranking.model_id}")
        click.echo(f"    Overall: #{ranking.overall_rank} (score {ranking.score:.3f})")
        click.echo(f"    Cost efficiency: #{ranking.cost_efficiency_rank}")
        click.echo(f"    Domain expertise: #{ranking.domain_expertise_rank}")
        click.echo(f"    Speed level: {ranking.speed_level}/5 - Cost level: {ranking.cost_level}/5")

    if report.summary:
        summary = report.summary
        click.echo(f"\nTopic: {summary['topic']}")
        click.echo(f"Models: {summary['total_models']}")
        click.echo("Top models: " + ", ".join(m['model_id'] for m in summary['top_models']))
        click.echo(f"Most cost effective: {summary['most_cost_effective']['model_id']}")
        click.echo(f"Best domain expert: {summary['best_domain_expert']['model_id']}")
        if summary.get('fastest'):
            click.echo(f"Fastest: {summary['fastest']['model_id']}")

    if report.cost_breakdown:
        click.echo("\nCost breakdown:")
        for model_id, breakdown in report.cost_breakdown.items():
            click.echo(f"  {model_id}: total ${breakdown['total_cost']:.6f}, "
                       f"per test case ${breakdown['cost_per_test_case']:.6f}, "
                       f"{breakdown['total_tokens']} tokens")

    if report.domain_insights:
        click.echo("\nDomain insights:")
        for insight in report.domain_insights:
            click.echo(f"  {insight.summary}")

    if report.recommendations:
        click.echo("\nRecommendations:")
        for recommendation in report.recommendations:
            click.echo(f"  - {recommendation}")


@click.group()
@click.version_option(package_name="llm-benchmark")
@click.option('--config', '-c',
              help='Path to configuration file')
@click.option('--storage-path',
              help='Path to store benchmark runs (overrides config)',
              envvar='LLM_BENCHMARK_STORAGE_PATH')
@click.option('--log-level',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging level (overrides config)')
@click.option('--log-file',
              help='Log file path (overrides config)')
@click.pass_context
def cli(ctx, config: Optional[str], storage_path: Optional[str],
        log_level: Optional[str], log_file: Optional[str]):
    """LLM Benchmark Toolkit - benchmark, rank and analyze language models."""
    ctx.ensure_object(dict)

    config_overrides = {}
    if storage_path:
        config_overrides['storage_path'] = storage_path
    if log_level:
        config_overrides['log_level'] = log_level.upper()
    if log_file:
        config_overrides['log_file'] = log_file

    try:
        settings = load_config_with_auto_discovery(
            config_file=config,
            config_overrides=config_overrides
        )
        benchmark_logger = setup_logging(settings)
    except (ValueError, FileNotFoundError) as e:
        click.echo(f"Error initializing configuration: {e}", err=True)
        sys.exit(1)

    ctx.obj['settings'] = settings
    ctx.obj['benchmark_logger'] = benchmark_logger
    ctx.obj['storage_manager'] = StorageManager(settings.storage_path)

    logger.debug("CLI initialized", storage_path=settings.storage_path)


@cli.command('run')
@click.argument('benchmark_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--dataset', '-d', type=click.Path(exists=True, dir_okay=False),
              help='JSONL file of extra test cases, run after those in BENCHMARK_FILE')
@click.option('--region',
              help='AWS region (overrides config)')
@click.option('--verbose', '-v', is_flag=True,
              help='Report progress after every test case')
@click.pass_context
def run_benchmark(ctx, benchmark_file: str, dataset: Optional[str], region: Optional[str], verbose: bool):
    """Run the benchmark defined in BENCHMARK_FILE (YAML or JSON)."""
    settings = ctx.obj['settings']
    storage_manager = ctx.obj['storage_manager']
    error_reporter = ErrorReporter(ctx.obj['benchmark_logger'].get_logger("errors"))

    dataset_cases = []
    if dataset:
        try:
            dataset_cases = DatasetLoader().load_dataset(dataset)
        except DatasetValidationError as e:
            error_reporter.report_validation_error(e, "dataset", {"file_path": dataset})
            click.echo(f"Error: invalid dataset: {e}", err=True)
            sys.exit(1)

    try:
        config = load_benchmark_config(benchmark_file, dataset_cases)
    except DatasetValidationError as e:
        error_reporter.report_validation_error(e, "benchmark", {"file_path": benchmark_file})
        click.echo(f"Error: invalid benchmark file: {e}", err=True)
        sys.exit(1)

    aws_region = region or settings.aws_region
    enabled = [model.model_id for model in config.enabled_models()]

    click.echo("Starting benchmark run...")
    click.echo(f"Benchmark: {config.name}")
    if config.topic:
        click.echo(f"Topic: {config.topic}")
    click.echo(f"Models: {', '.join(enabled) or 'none enabled'}")
    click.echo(f"Test cases: {len(config.test_cases)}")
    click.echo(f"Region: {aws_region}")

    try:
        run = asyncio.run(execute_benchmark(
            settings,
            ctx.obj['benchmark_logger'],
            storage_manager,
            config,
            aws_region,
            verbose
        ))
    except KeyboardInterrupt:
        click.echo("\nBenchmark interrupted by user")
        sys.exit(1)

    if run.status == RunStatus.FAILED:
        click.echo(f"\nBenchmark failed: {run.error}", err=True)
        click.echo(f"Run ID: {run.id}")
        sys.exit(1)

    click.echo("\nBenchmark completed successfully!")
    click.echo(f"Run ID: {run.id}")

    click.echo("\nRun Summary:")
    for model_id, summary in run.summary.get('models', {}).items():
        click.echo(f"  {model_id}:")
        click.echo(f"    Success rate: {summary['success_rate']:.1%}")
        click.echo(f"    Average latency: {summary['avg_latency']:.1f}ms")
        click.echo(f"    Total tokens: {summary['total_tokens']}")
        click.echo(f"    Total cost: ${summary['total_cost']:.6f}")

    click.echo(f"\nTo analyze results: llm-benchmark analyze {run.id}")


@cli.command()
@click.argument('run_id')
@click.pass_context
def status(ctx, run_id: str):
    """Show the status of a run."""
    storage_manager = ctx.obj['storage_manager']

    run = asyncio.run(storage_manager.get_run(run_id))
    if run is None:
        click.echo(f"Error: Run {run_id} not found", err=True)
        sys.exit(1)

    details = run.status_details
    click.echo(f"Run ID: {run.id}")
    click.echo(f"Benchmark: {run.config.name}")
    click.echo(f"Status: {run.status.value}")
    click.echo(f"Progress: {details.progress}/{details.total_tests}")
    if details.current_model and not run.status.is_terminal:
        click.echo(f"Current: {details.current_model} / {details.current_test}")
    if run.error:
        click.echo(f"Error: {run.error}")
    click.echo(f"Created: {run.created_at}")


@cli.command()
@click.argument('run_id')
@click.option('--type', 'analysis_type', type=click.Choice(ANALYSIS_TYPES),
              default='general', help='Kind of analysis')
@click.option('--json', 'as_json', is_flag=True, help='Print the report as JSON')
@click.pass_context
def analyze(ctx, run_id: str, analysis_type: str, as_json: bool):
    """Rank the models of a completed run and print an analysis."""
    analyzer = BenchmarkAnalyzer(ctx.obj['storage_manager'])
    report = asyncio.run(analyzer.analyze(run_id, analysis_type))

    if report.error:
        click.echo(f"Error: {report.error}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        echo_report(report)


@cli.command('export-run')
@click.argument('run_id')
@click.option('--output', '-o', help='Output file path')
@click.option('--format', type=click.Choice(['csv', 'json', 'parquet']),
              default='csv', help='Output format')
@click.pass_context
def export_run(ctx, run_id: str, output: Optional[str], format: str):
    """Export run results to a file."""
    storage_manager = ctx.obj['storage_manager']

    try:
        df = storage_manager.export_run_to_dataframe(run_id)
    except BenchmarkError as e:
        click.echo(f"Error exporting run: {e}", err=True)
        sys.exit(1)

    if df.empty:
        click.echo(f"No data found for run {run_id}")
        return

    if not output:
        output = f"run_{run_id}.{format}"

    if format == 'csv':
        df.to_csv(output, index=False)
    elif format == 'json':
        df.to_json(output, orient='records', indent=2)
    elif format == 'parquet':
        df.to_parquet(output, index=False)

    click.echo(f"Exported {len(df)} records to {output}")
    click.echo(f"Columns: {', '.join(df.columns)}")


@cli.command('list-runs')
@click.pass_context
def list_runs(ctx):
    """List all stored runs."""
    runs = ctx.obj['storage_manager'].list_runs()

    if not runs:
        click.echo("No runs found.")
        return

    click.echo(f"Runs ({len(runs)}):")
    for run in runs:
        click.echo(f"  {run.id}:")
        click.echo(f"    Benchmark: {run.config.name}")
        click.echo(f"    Status: {run.status.value}")
        click.echo(f"    Progress: {run.status_details.progress}/{run.status_details.total_tests}")
        click.echo(f"    Created: {run.created_at}")
        click.echo()


@cli.command('import-cases')
@click.argument('text_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', help='JSONL file to write (prints JSON when omitted)')
@click.option('--count', '-n', type=int, help='Maximum number of test cases')
@click.pass_context
def import_cases(ctx, text_file: str, output: Optional[str], count: Optional[int]):
    """Extract test cases from model-generated TEXT_FILE."""
    text = Path(text_file).read_text(encoding='utf-8')

    try:
        test_cases = extract_test_cases(text, count)
    except ParseError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    records = [asdict(test_case) for test_case in test_cases]

    if not output:
        click.echo(json.dumps(records, indent=2))
        return

    with open(output, 'w', encoding='utf-8') as f:
        for record in records:
            f.write(json.dumps(record) + '\n')
    click.echo(f"Wrote {len(records)} test cases to {output}")


@cli.command('save-config')
@click.argument('output')
@click.option('--format', type=click.Choice(['yaml', 'json']), default='yaml',
              help='Output format')
@click.pass_context
def save_config(ctx, output: str, format: str):
    """Write the effective configuration to OUTPUT."""
    manager = ConfigManager()

    try:
        manager.load_config(ctx.obj['settings'].model_dump(), validate=False)
        manager.save_config(output, format)
    except ValueError as e:
        click.echo(f"Error saving configuration: {e}", err=True)
        sys.exit(1)

    click.echo(f"Configuration saved to {output}")


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
