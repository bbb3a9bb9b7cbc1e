"""Command-line interface for the brand sanitizer."""

from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

# Load environment variables from .env file
# Searches current directory and parents
load_dotenv()

console = Console()

SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".tif", ".tiff"}


@click.group()
def main() -> None:
    """Remove brand marks from product photographs."""


@main.command()
@click.argument("catalog_path", metavar="CATALOG", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--product-id", "-p",
    "product_ids",
    multiple=True,
    help="Product id to analyze (repeatable)"
)
@click.option(
    "--all", "analyze_all",
    is_flag=True,
    help="Analyze every product in the catalog"
)
@click.option(
    "--output", "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output directory for sanitized images and results. Defaults to './sanitized'"
)
@click.option(
    "--config", "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to configuration file"
)
@click.option(
    "--max-passes",
    type=click.IntRange(min=0),
    default=None,
    help="Maximum generative edit passes per product (default: 3)"
)
@click.option(
    "--threshold",
    type=click.IntRange(0, 100),
    default=None,
    help="Risk score below which a photo counts as clean (default: 30)"
)
@click.option(
    "--delay-ms",
    type=click.IntRange(min=0),
    default=None,
    help="Delay between batch items in milliseconds (default: 2000)"
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Number of products processed at once (default: 1)"
)
def analyze(
    catalog_path: Path,
    product_ids: tuple[str, ...],
    analyze_all: bool,
    output: Path | None,
    config: Path | None,
    max_passes: int | None,
    threshold: int | None,
    delay_ms: int | None,
    concurrency: int | None,
) -> None:
    """Sanitize product photographs from CATALOG.

    CATALOG is a YAML or JSON file listing products with id, sku, name and image.
    """
    from .catalog import load_catalog
    from .config import Config, load_config
    from .pipeline import ProductPipeline
    from .store import JsonAnalysisStore

    if not product_ids and not analyze_all:
        raise click.UsageError("Pass --product-id at least once, or --all")

    if output is None:
        output = Path("./sanitized")
    output.mkdir(parents=True, exist_ok=True)

    cfg = load_config(config) if config else Config()

    # Apply CLI overrides to config
    if max_passes is not None:
        cfg.max_passes = max_passes
    if threshold is not None:
        cfg.clean_risk_threshold = threshold
    if delay_ms is not None:
        cfg.inter_item_delay_ms = delay_ms
    if concurrency is not None:
        cfg.concurrency = concurrency

    catalog = load_catalog(catalog_path)

    console.print("[bold blue]Brand Sanitizer[/bold blue]")
    console.print(f"Catalog: {catalog_path} ({len(catalog)} products)")
    console.print(f"Output: {output}")
    console.print(f"Detector: {cfg.detector}, max passes: {cfg.max_passes}")

    pipeline = ProductPipeline(
        config=cfg,
        store=JsonAnalysisStore(output / "results"),
        catalog=catalog,
        output_dir=output,
    )

    try:
        if len(product_ids) == 1 and not analyze_all:
            results = [pipeline.analyze_single(product_ids[0])]
        else:
            results = pipeline.analyze_batch(None if analyze_all else list(product_ids))
    except KeyError as e:
        raise click.BadParameter(str(e.args[0]), param_hint="--product-id") from e

    _print_results(results)


def _print_results(results) -> None:
    from .batch import summarize

    table = Table(title="Analysis results")
    table.add_column("Product")
    table.add_column("Status")
    table.add_column("Risk", justify="right")
    table.add_column("Passes", justify="right")
    table.add_column("Title")
    table.add_column("Image / error")

    for r in results:
        table.add_row(
            r.product_id,
            r.status.value,
            str(r.risk_score),
            str(r.passes_used),
            r.title,
            r.error or (r.edited_image_ref or ""),
        )
    console.print(table)

    summary = summarize(results)
    console.print(
        f"{summary['clean']} clean, {summary['blur_applied']} blur applied, "
        f"{summary['failed']} failed"
    )


def _score_table(paths: list[Path], threshold: int) -> tuple[Table, int]:
    from .sharpness import score_or_worst

    table = Table()
    table.add_column("File")
    table.add_column("Sharpness", justify="right")
    table.add_column("Blur score", justify="right")
    table.add_column("Blurry")

    flagged = 0
    for path in paths:
        metric = score_or_worst(path.read_bytes())
        significant = metric.is_significant(threshold)
        flagged += significant
        table.add_row(
            path.name,
            f"{metric.sharpness:.1f}",
            str(metric.blur_score),
            "[red]yes[/red]" if significant else "[green]no[/green]",
        )
    return table, flagged


@main.command()
@click.argument("images", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--threshold",
    type=click.IntRange(0, 100),
    default=50,
    help="Blur score at which an image counts as blurry (default: 50)"
)
def score(images: tuple[Path, ...], threshold: int) -> None:
    """Print the sharpness and blur score of each image."""
    table, _ = _score_table(list(images), threshold)
    console.print(table)


@main.command("blur-report")
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--threshold",
    type=click.IntRange(0, 100),
    default=50,
    help="Blur score at which an image counts as blurry (default: 50)"
)
def blur_report(directory: Path, threshold: int) -> None:
    """Score every image in DIRECTORY and flag the blurry ones."""
    images = sorted(
        f for f in directory.iterdir()
        if f.is_file() and f.suffix.lower() in SUPPORTED_EXTENSIONS
    )
    if not images:
        console.print(f"No images found in {directory}")
        return

    table, flagged = _score_table(images, threshold)
    table.title = f"Blur report: {directory}"
    console.print(table)
    console.print(f"[bold]{flagged}[/bold] of {len(images)} images are blurry (score ≥ {threshold})")


if __name__ == "__main__":
    main()
