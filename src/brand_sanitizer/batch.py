"""Paced batch processing over many products."""

import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from rich.console import Console

from .models import AnalysisResult, Product, ProductStatus

console = Console()

ProgressCallback = Callable[[int, int, AnalysisResult], None]


class BatchScheduler:
    """Runs a pipeline over products with pacing between item starts.

    With ``concurrency`` 1 items run strictly one after another. Higher values
    run items on a thread pool; starts are still paced by ``delay_s``. A
    failing item yields a ``failed`` result and the batch continues.
    """

    def __init__(
        self,
        pipeline,
        delay_s: float = 2.0,
        concurrency: int = 1,
        cancel_event: threading.Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.pipeline = pipeline
        self.delay_s = max(0.0, delay_s)
        self.concurrency = concurrency
        self.cancel_event = cancel_event
        self.sleep = sleep

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _run_one(self, product: Product) -> AnalysisResult:
        try:
            return self.pipeline.run(product)
        except Exception as e:
            console.print(f"[red]Failed {product.id}:[/red] {e}")
            result = AnalysisResult(
                product_id=product.id,
                title=product.name,
                status=ProductStatus.FAILED,
                error=str(e),
            )
            self.pipeline.store.upsert(product.id, result)
            return result

    def run_batch(
        self,
        products: list[Product],
        on_progress: ProgressCallback | None = None,
    ) -> list[AnalysisResult]:
        """Process ``products`` and return their results in input order.

        Items not yet started when the cancel event is set are skipped and
        have no result.
        """
        total = len(products)
        console.print(f"\nFound [bold]{total}[/bold] products to analyze")

        if self.concurrency == 1:
            results = self._run_sequential(products, on_progress)
        else:
            results = self._run_concurrent(products, on_progress)

        summary = summarize(results)
        console.print(
            f"\n[bold green]Complete![/bold green] Analyzed {len(results)}/{total} products "
            f"([green]{summary['clean']} clean[/green], "
            f"[yellow]{summary['blur_applied']} blurred[/yellow], "
            f"[red]{summary['failed']} failed[/red])"
        )
        return results

    def _run_sequential(self, products, on_progress) -> list[AnalysisResult]:
        total = len(products)
        results = []
        for i, product in enumerate(products, 1):
            if self._cancelled():
                console.print("[yellow]Batch cancelled[/yellow]")
                break
            if i > 1 and self.delay_s:
                self.sleep(self.delay_s)

            console.print(f"\n[dim]({i}/{total})[/dim]")
            result = self._run_one(product)
            results.append(result)
            if on_progress:
                on_progress(i, total, result)
        return results

    def _run_concurrent(self, products, on_progress) -> list[AnalysisResult]:
        total = len(products)
        completed = 0
        lock = threading.Lock()

        def work(product: Product) -> AnalysisResult:
            nonlocal completed
            result = self._run_one(product)
            with lock:
                completed += 1
                if on_progress:
                    on_progress(completed, total, result)
            return result

        futures = []
        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            for i, product in enumerate(products):
                if self._cancelled():
                    console.print("[yellow]Batch cancelled[/yellow]")
                    break
                if i > 0 and self.delay_s:
                    self.sleep(self.delay_s)
                futures.append(executor.submit(work, product))

        return [f.result() for f in futures]


def summarize(results: list[AnalysisResult]) -> dict:
    """Count results by status and collect the errors of failed items."""
    counts = Counter(r.status for r in results)
    return {
        "total": len(results),
        "clean": counts[ProductStatus.CLEAN],
        "blur_applied": counts[ProductStatus.BLUR_APPLIED],
        "failed": counts[ProductStatus.FAILED],
        "errors": {
            r.product_id: r.error or "unknown error"
            for r in results
            if r.status is ProductStatus.FAILED
        },
    }
