import threading

import pytest

from brand_sanitizer.models import AnalysisResult, EditStrategy, ProductStatus
from brand_sanitizer.store import InMemoryAnalysisStore, JsonAnalysisStore, safe_key


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryAnalysisStore()
    return JsonAnalysisStore(tmp_path / "results")


def test_missing_product(store):
    assert store.get("nope") is None
    assert store.all() == []


def test_last_write_wins(store):
    store.upsert("p1", AnalysisResult(product_id="p1", status=ProductStatus.FAILED, error="boom"))
    store.upsert("p1", AnalysisResult(product_id="p1", status=ProductStatus.CLEAN, risk_score=5))

    current = store.get("p1")
    assert current.status is ProductStatus.CLEAN
    assert current.risk_score == 5
    assert current.error is None
    assert len(store.all()) == 1


def test_concurrent_upserts_keep_one_result(store):
    def write(i):
        store.upsert("p1", AnalysisResult(product_id="p1", risk_score=i))

    threads = [threading.Thread(target=write, args=(i,)) for i in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store.all()) == 1
    assert store.get("p1").risk_score in range(10)


def test_json_store_round_trip(tmp_path):
    result = AnalysisResult(
        product_id="shoe/42",
        status=ProductStatus.BLUR_APPLIED,
        title="NK AJ 1",
        brands_detected=["Nike"],
        fallback_blur_used=True,
        sharpness=123.4,
        blur_score=60,
        strategies=[
            EditStrategy(type="logo", priority="high", approach="remove", instruction="x", label="Jumpman logo"),
        ],
    )
    JsonAnalysisStore(tmp_path).upsert("shoe/42", result)

    # a fresh store over the same directory sees the persisted result
    loaded = JsonAnalysisStore(tmp_path).get("shoe/42")
    assert loaded == result
    assert (tmp_path / "shoe_42.json").exists()
    assert not list(tmp_path.glob("*.tmp"))


def test_safe_key():
    assert safe_key("abc-1.2_x") == "abc-1.2_x"
    assert safe_key("a/b c") == "a_b_c"
