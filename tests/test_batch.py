import threading

import pytest

from brand_sanitizer.batch import BatchScheduler, summarize
from brand_sanitizer.catalog import ProductCatalog
from brand_sanitizer.config import Config
from brand_sanitizer.models import AnalysisResult, Product, ProductStatus
from brand_sanitizer.pipeline import ProductPipeline
from brand_sanitizer.store import InMemoryAnalysisStore

from conftest import FakeDetector, FakeEditor, clean, write_image


def _products(tmp_path, n: int) -> list[Product]:
    return [
        Product(id=f"p{i}", name=f"Product {i}", image=str(write_image(tmp_path / f"p{i}.png")))
        for i in range(1, n + 1)
    ]


def _pipeline(tmp_path, detector, products, **config) -> ProductPipeline:
    return ProductPipeline(
        config=Config(**config),
        detector=detector,
        editor=FakeEditor(),
        store=InMemoryAnalysisStore(),
        catalog=ProductCatalog(products),
        output_dir=tmp_path / "out",
        show_progress=False,
    )


def test_one_failing_item_does_not_stop_batch(tmp_path):
    products = _products(tmp_path, 5)
    pipeline = _pipeline(tmp_path, FakeDetector([clean()], fail_on_call=3), products)
    sleeps = []

    results = BatchScheduler(pipeline, delay_s=2.0, sleep=sleeps.append).run_batch(products)

    assert [r.product_id for r in results] == ["p1", "p2", "p3", "p4", "p5"]
    assert [r.status for r in results] == [
        ProductStatus.CLEAN,
        ProductStatus.CLEAN,
        ProductStatus.FAILED,
        ProductStatus.CLEAN,
        ProductStatus.CLEAN,
    ]
    assert results[2].error == "detector unavailable"
    # paced between starts, no delay after the last item
    assert sleeps == [2.0] * 4
    assert len(pipeline.store.all()) == 5


def test_progress_callback(tmp_path):
    products = _products(tmp_path, 3)
    pipeline = _pipeline(tmp_path, FakeDetector([clean()]), products)
    seen = []

    BatchScheduler(pipeline, delay_s=0).run_batch(
        products, on_progress=lambda i, total, r: seen.append((i, total, r.product_id))
    )

    assert seen == [(1, 3, "p1"), (2, 3, "p2"), (3, 3, "p3")]


def test_single_item_batch_never_sleeps(tmp_path):
    products = _products(tmp_path, 1)
    sleeps = []
    BatchScheduler(
        _pipeline(tmp_path, FakeDetector([clean()]), products), delay_s=2.0, sleep=sleeps.append
    ).run_batch(products)
    assert sleeps == []


def test_cancellation_stops_scheduling(tmp_path):
    products = _products(tmp_path, 4)
    cancel = threading.Event()
    scheduler = BatchScheduler(
        _pipeline(tmp_path, FakeDetector([clean()]), products),
        delay_s=0,
        cancel_event=cancel,
    )

    results = scheduler.run_batch(products, on_progress=lambda i, total, r: cancel.set())

    assert [r.product_id for r in results] == ["p1"]


class _ExplodingPipeline:
    def __init__(self):
        self.store = InMemoryAnalysisStore()

    def run(self, product):
        if product.id == "p2":
            raise RuntimeError("unexpected")
        result = AnalysisResult(product_id=product.id, status=ProductStatus.CLEAN)
        self.store.upsert(product.id, result)
        return result


def test_unexpected_exception_becomes_failed_result(tmp_path):
    products = _products(tmp_path, 3)
    pipeline = _ExplodingPipeline()

    results = BatchScheduler(pipeline, delay_s=0).run_batch(products)

    assert [r.status for r in results] == [ProductStatus.CLEAN, ProductStatus.FAILED, ProductStatus.CLEAN]
    assert results[1].error == "unexpected"
    assert pipeline.store.get("p2").status is ProductStatus.FAILED


def test_concurrent_batch_keeps_input_order(tmp_path):
    products = _products(tmp_path, 6)
    pipeline = _ExplodingPipeline()
    sleeps = []
    seen = []

    results = BatchScheduler(pipeline, delay_s=0.5, concurrency=3, sleep=sleeps.append).run_batch(
        products, on_progress=lambda i, total, r: seen.append(i)
    )

    assert [r.product_id for r in results] == [p.id for p in products]
    assert results[1].status is ProductStatus.FAILED
    assert sleeps == [0.5] * 5
    assert sorted(seen) == [1, 2, 3, 4, 5, 6]


def test_invalid_concurrency():
    with pytest.raises(ValueError):
        BatchScheduler(_ExplodingPipeline(), concurrency=0)


def test_analyze_batch_through_pipeline(tmp_path):
    products = _products(tmp_path, 3)
    pipeline = _pipeline(tmp_path, FakeDetector([clean()]), products, inter_item_delay_ms=0)

    results = pipeline.analyze_batch(["p3", "p1"])

    assert [r.product_id for r in results] == ["p3", "p1"]
    assert len(pipeline.analyze_batch()) == 3


def test_summarize():
    results = [
        AnalysisResult(product_id="a", status=ProductStatus.CLEAN),
        AnalysisResult(product_id="b", status=ProductStatus.BLUR_APPLIED),
        AnalysisResult(product_id="c", status=ProductStatus.FAILED, error="boom"),
        AnalysisResult(product_id="d", status=ProductStatus.FAILED),
    ]
    summary = summarize(results)

    assert summary["total"] == 4
    assert (summary["clean"], summary["blur_applied"], summary["failed"]) == (1, 1, 2)
    assert summary["errors"] == {"c": "boom", "d": "unknown error"}
