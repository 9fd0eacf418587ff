from __future__ import annotations

from pathlib import Path

import pytest
import pytesseract

from conftest import FakeRecognizer, png_bytes
from downcraft import ocr
from downcraft.cache import OCRCache
from downcraft.errors import RecognitionError
from downcraft.io import LocalByteSink
from downcraft.models import ImageRecord


def make_records(tmp_path: Path, payloads: list[bytes]) -> list[ImageRecord]:
    sink = LocalByteSink()
    records = []
    for index, payload in enumerate(payloads, start=1):
        path = tmp_path / f"page_1_image_{index}.png"
        sink.write(path, payload)
        records.append(ImageRecord(page_number=1, image_index=index, path=path, width=8, height=8))
    return records


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("  Figure   1:\tdiagram  ", "Figure 1: diagram"),
        ("Title\n\n~~~\n  body text ", "Title\nbody text"),
        ("a | b", "a b"),
        ("", ""),
        (None, ""),
        ("%% ##\n!!", ""),
    ],
)
def test_clean_ocr_text(raw: str | None, expected: str) -> None:
    assert ocr.clean_ocr_text(raw) == expected


def test_results_preserve_input_order(tmp_path: Path) -> None:
    payloads = [b"img-a", b"img-b", b"img-c"]
    recognizer = FakeRecognizer({b"img-a": "alpha", b"img-b": "beta", b"img-c": "gamma"})
    records = make_records(tmp_path, payloads)

    result = ocr.process_images(records, recognizer=recognizer, use_cache=False)

    assert [record.ocr_text for record in result] == ["alpha", "beta", "gamma"]
    assert [record.identity for record in result] == [(1, 1), (1, 2), (1, 3)]
    assert all(record.ocr_error is None for record in result)


def test_single_failure_does_not_abort_batch(tmp_path: Path) -> None:
    recognizer = FakeRecognizer({b"good": "fine"}, fail_on={b"bad"})
    records = make_records(tmp_path, [b"bad", b"good"])

    result = ocr.process_images(records, recognizer=recognizer, use_cache=False)

    assert (result[0].ocr_text, result[0].ocr_error) == ("", "engine exploded")
    assert (result[1].ocr_text, result[1].ocr_error) == ("fine", None)


def test_unreadable_image_is_recorded_as_error(tmp_path: Path, fake_recognizer: FakeRecognizer) -> None:
    record = ImageRecord(page_number=1, image_index=1, path=tmp_path / "missing.png", width=1, height=1)

    (result,) = ocr.process_images([record], recognizer=fake_recognizer)

    assert result.ocr_text == ""
    assert result.ocr_error and "Cannot read image" in result.ocr_error
    assert fake_recognizer.calls == []


def test_cache_avoids_repeat_recognition(tmp_path: Path) -> None:
    cache = OCRCache(tmp_path / "cache")
    recognizer = FakeRecognizer({b"one": "first", b"two": "second"})

    ocr.process_images(make_records(tmp_path / "run1", [b"one", b"two"]), recognizer=recognizer, cache=cache)
    second = ocr.process_images(
        make_records(tmp_path / "run2", [b"one", b"two"]), recognizer=recognizer, cache=cache
    )

    assert sorted(recognizer.calls) == [b"one", b"two"]
    assert [record.ocr_text for record in second] == ["first", "second"]


def test_identical_images_recognised_once_per_call(tmp_path: Path) -> None:
    cache = OCRCache(tmp_path / "cache")
    recognizer = FakeRecognizer(default="same")
    records = make_records(tmp_path, [b"dup", b"dup", b"dup", b"other"])

    result = ocr.process_images(records, recognizer=recognizer, cache=cache, batch_size=4)

    assert sorted(recognizer.calls) == [b"dup", b"other"]
    assert [record.ocr_text for record in result] == ["same"] * 4


def test_disabled_cache_always_runs_and_writes_nothing(tmp_path: Path) -> None:
    cache_dir = tmp_path / "cache"
    cache = OCRCache(cache_dir)
    recognizer = FakeRecognizer(default="text")
    records = make_records(tmp_path, [b"dup", b"dup"])

    ocr.process_images(records, recognizer=recognizer, cache=cache, use_cache=False, batch_size=2)
    ocr.process_images(records, recognizer=recognizer, cache=cache, use_cache=False)

    assert len(recognizer.calls) == 4
    assert not cache_dir.exists()


def test_failures_are_not_cached(tmp_path: Path) -> None:
    cache = OCRCache(tmp_path / "cache")
    recognizer = FakeRecognizer(fail_on={b"bad"})

    ocr.process_images(make_records(tmp_path, [b"bad"]), recognizer=recognizer, cache=cache)

    assert cache.get(b"bad") is None


def test_blank_recognition_is_retried_on_next_run(tmp_path: Path) -> None:
    cache = OCRCache(tmp_path / "cache")
    recognizer = FakeRecognizer(default="  ~~ \n")

    first = ocr.process_images(make_records(tmp_path / "run1", [b"blank"]), recognizer=recognizer, cache=cache)
    ocr.process_images(make_records(tmp_path / "run2", [b"blank"]), recognizer=recognizer, cache=cache)

    assert (first[0].ocr_text, first[0].ocr_error) == ("", None)
    assert cache.get(b"blank") is None
    assert recognizer.calls == [b"blank", b"blank"]


def test_concurrency_never_exceeds_batch_size(tmp_path: Path) -> None:
    payloads = [f"img-{i}".encode() for i in range(7)]
    recognizer = FakeRecognizer(lambda data: data.decode(), delay=0.02)
    records = make_records(tmp_path, payloads)

    result = ocr.process_images(records, recognizer=recognizer, use_cache=False, batch_size=3)

    assert recognizer.max_in_flight <= 3
    assert [record.ocr_text for record in result] == [f"img-{i}" for i in range(7)]


def test_batch_size_one_is_sequential(tmp_path: Path) -> None:
    recognizer = FakeRecognizer(delay=0.01)
    ocr.process_images(make_records(tmp_path, [b"a", b"b", b"c"]), recognizer=recognizer, batch_size=1)
    assert recognizer.max_in_flight == 1
    assert recognizer.calls == [b"a", b"b", b"c"]


def test_invalid_batch_size_rejected(tmp_path: Path, fake_recognizer: FakeRecognizer) -> None:
    with pytest.raises(ValueError):
        ocr.process_images([], recognizer=fake_recognizer, batch_size=0)


def test_tesseract_recognizer_maps_engine_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(*args, **kwargs):
        raise pytesseract.TesseractError(1, "bad language")

    monkeypatch.setattr(ocr.pytesseract, "image_to_string", boom)

    with pytest.raises(RecognitionError, match="Tesseract OCR failed"):
        ocr.TesseractRecognizer().recognize(png_bytes())


def test_tesseract_recognizer_passes_language_and_config(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_image_to_string(image, lang=None, config=None):
        captured.update(mode=image.mode, lang=lang, config=config)
        return "Recognised"

    monkeypatch.setattr(ocr.pytesseract, "image_to_string", fake_image_to_string)

    recognizer = ocr.TesseractRecognizer(lang="eng+deu", config="--psm 6")
    assert recognizer.recognize(png_bytes()) == "Recognised"
    assert captured == {"mode": "RGB", "lang": "eng+deu", "config": "--psm 6"}


def test_tesseract_recognizer_rejects_garbage_bytes() -> None:
    with pytest.raises(RecognitionError, match="Unreadable image data"):
        ocr.TesseractRecognizer().recognize(b"not an image")
