"""Per-product orchestration: title camouflage, verification and status."""

import threading
from enum import Enum
from pathlib import Path
from typing import Callable

import numpy as np
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from .catalog import ProductCatalog
from .config import Config
from .detection import BrandDetector, create_detector
from .editor import ImageEditor, create_editor
from .exceptions import ExhaustedPasses, SanitizerError
from .models import AnalysisResult, Product, ProductStatus
from .store import AnalysisStore, InMemoryAnalysisStore
from .strategy import infer_category, review_labels
from .title import camouflage
from .verification import LoopState, VerificationLoop, VerificationOutcome

console = Console()

STATUS_STYLES = {
    ProductStatus.CLEAN: "green",
    ProductStatus.BLUR_APPLIED: "yellow",
    ProductStatus.FAILED: "red",
    ProductStatus.PENDING: "dim",
}


class PipelineState(str, Enum):
    PENDING = "pending"
    TITLE_CAMOUFLAGED = "title_camouflaged"
    VERIFIED = "verified"


class ProductPipeline:
    """Runs one product through sanitization and records exactly one result."""

    def __init__(
        self,
        config: Config | None = None,
        detector: BrandDetector | None = None,
        editor: ImageEditor | None = None,
        store: AnalysisStore | None = None,
        catalog: ProductCatalog | None = None,
        output_dir: Path = Path("./sanitized"),
        cancel_event: threading.Event | None = None,
        title_transform: Callable[[str], str] = camouflage,
        show_progress: bool = True,
    ):
        self.config = config or Config()
        self.detector = detector or create_detector(self.config)
        self.editor = editor or create_editor(self.config)
        self.store = store or InMemoryAnalysisStore()
        self.catalog = catalog
        self.output_dir = Path(output_dir)
        self.cancel_event = cancel_event
        self.title_transform = title_transform
        self.show_progress = show_progress

    def run(self, product: Product) -> AnalysisResult:
        """Process a single product and upsert its result."""
        if self.show_progress:
            console.print(f"\n[cyan]Analyzing:[/cyan] {product.name} [dim]({product.id})[/dim]")

        result = AnalysisResult(
            product_id=product.id,
            title=product.name,
            edited_image_ref=product.image,
        )
        state = PipelineState.PENDING

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            disable=not self.show_progress,
        ) as progress:
            # Step 1: Title camouflage
            task = progress.add_task("Camouflaging title...", total=None)
            result.title = self._camouflage_title(product.name)
            state = PipelineState.TITLE_CAMOUFLAGED
            progress.update(task, description=f"[green]✓[/green] Title: {result.title}")

            try:
                # Step 2: Load primary photograph
                task = progress.add_task("Loading image...", total=None)
                image = self._load_image(product.image)
                progress.update(task, description="[green]✓[/green] Image loaded")

                # Step 3: Verification loop
                task = progress.add_task("Verifying...", total=None)
                outcome = self._verify(
                    image,
                    infer_category(product.name),
                    on_transition=lambda s: progress.update(
                        task, description=f"Verifying ({s.value.replace('_', ' ')})..."
                    ),
                )
                state = PipelineState.VERIFIED
                progress.update(
                    task,
                    description=f"[green]✓[/green] Verified in {outcome.passes_used} pass(es)",
                )

                # Step 4: Status, blur audit and export
                task = progress.add_task("Recording result...", total=None)
                self._record_outcome(result, outcome, product)
                progress.update(task, description="[green]✓[/green] Result recorded")
            except SanitizerError as e:
                result.status = ProductStatus.FAILED
                result.error = str(e)
            except Exception as e:
                console.print(f"[red]Unexpected error analyzing {product.id}:[/red] {e!r}")
                result.status = ProductStatus.FAILED
                result.error = f"{type(e).__name__}: {e}"

        self.store.upsert(product.id, result)

        if self.show_progress:
            style = STATUS_STYLES[result.status]
            line = f"[{style}]{result.status.value}[/{style}] risk {result.risk_score}"
            if result.error:
                line += f" [dim]{result.error}[/dim]"
            elif state is PipelineState.VERIFIED:
                line += f" → {result.edited_image_ref}"
            console.print(line)
        return result

    def analyze_single(self, product_id: str) -> AnalysisResult:
        """Analyze one catalog product by id.

        Raises:
            KeyError: if the product id is not in the catalog
        """
        return self.run(self._require_catalog().get(product_id))

    def analyze_batch(
        self,
        product_ids: list[str] | None = None,
        on_progress: Callable[[int, int, AnalysisResult], None] | None = None,
    ) -> list[AnalysisResult]:
        """Analyze the given catalog products (or all of them) in order."""
        from .batch import BatchScheduler

        products = self._require_catalog().select(product_ids)
        scheduler = BatchScheduler(
            self,
            delay_s=self.config.inter_item_delay_ms / 1000,
            concurrency=self.config.concurrency,
            cancel_event=self.cancel_event,
        )

        show_progress = self.show_progress
        if self.config.concurrency > 1:
            # Only one live progress display may be active at a time
            self.show_progress = False
        try:
            return scheduler.run_batch(products, on_progress=on_progress)
        finally:
            self.show_progress = show_progress

    def _require_catalog(self) -> ProductCatalog:
        if self.catalog is None:
            raise ValueError("No product catalog configured")
        return self.catalog

    def _camouflage_title(self, title: str) -> str:
        """Apply the title transform, keeping the original title on failure."""
        try:
            return self.title_transform(title)
        except Exception as e:
            console.print(f"[yellow]Title camouflage failed, keeping original: {e}[/yellow]")
            return title

    def _load_image(self, ref: str) -> np.ndarray:
        from .image_io import decode_image, fetch_image_bytes
        return decode_image(fetch_image_bytes(ref, timeout=self.config.request_timeout_s))

    def _verify(self, image: np.ndarray, category: str, on_transition=None) -> VerificationOutcome:
        loop = VerificationLoop(
            self.detector,
            self.editor,
            self.config,
            cancel_event=self.cancel_event,
            on_transition=on_transition,
        )
        return loop.run(image, category)

    def _record_outcome(
        self,
        result: AnalysisResult,
        outcome: VerificationOutcome,
        product: Product,
    ) -> None:
        from .sharpness import score

        result.risk_score = outcome.final.risk_score
        result.brands_detected = list(outcome.initial.brands)
        result.passes_used = outcome.passes_used
        result.fallback_blur_used = outcome.fallback_blur_used
        result.strategies = outcome.strategies
        result.review_reasons = review_labels(outcome.strategies)
        result.review_reasons.extend(
            f"Edit {n} rejected: {reason}"
            for n, reason in enumerate(outcome.rejected_edits, start=1)
        )

        metric = score(outcome.image)
        result.sharpness = metric.sharpness
        result.blur_score = metric.blur_score

        if outcome.state is LoopState.CLEAN:
            if outcome.fallback_blur_used and not self.config.treat_fallback_blur_as_clean:
                result.status = ProductStatus.BLUR_APPLIED
            else:
                result.status = ProductStatus.CLEAN
        else:
            result.status = ProductStatus.FAILED
            result.error = str(
                ExhaustedPasses(outcome.passes_used, outcome.final.risk_score, outcome.final.brands)
            )

        if outcome.passes_used or outcome.fallback_blur_used:
            self._export(outcome.image, product, result)

    def _export(self, image: np.ndarray, product: Product, result: AnalysisResult) -> Path:
        """Export as PNG with a JSON sidecar."""
        from .exporter import export_image, save_sidecar
        path = export_image(image, product, self.output_dir)
        result.edited_image_ref = str(path)
        save_sidecar(path, product, result)
        return path
