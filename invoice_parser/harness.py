#!/usr/bin/env python3
"""
Invoice Parsing Test - compare parser output with curated expected results

Each sample set is a folder of page images plus an expected-results fixture:

    <images-dir>/<set>/0.jpg, 1.jpg, ...
    <expected-dir>/<set>.json      (list of itemId/itemDescription/quantity/unitPrice/pageIndex)

The pages are assembled into one PDF, run through the full parsing pipeline
and compared with the fixture.

Usage:
    invoice-parse-test Ver1ExpectedResults Ver2ExpectedResults
"""

import argparse
import asyncio
import json
import re
from pathlib import Path
from loguru import logger
from pydantic import BaseModel, Field, TypeAdapter
from .core.config import settings
from .core.logging import setup_logging
from .models.invoice import InvoiceItem
from .services.comparator import DiffReport, compare_items
from .services.pdf_builder import build_pdf_from_images
from .services.pipeline import process_document
from .services.validation import ValidationIssue, validate_parse_results

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png"}

_items_adapter = TypeAdapter(list[InvoiceItem])


class SampleSetResult(BaseModel):
    name: str
    total_items: int = 0
    validation_issues: list[ValidationIssue] = Field(default_factory=list)
    report: DiffReport = Field(default_factory=DiffReport)

    @property
    def passed(self) -> bool:
        return not self.validation_issues and self.report.passed


class ParsingTestResult(BaseModel):
    sets: list[SampleSetResult] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(s.passed for s in self.sets)


def natural_sort_key(name: str) -> list:
    """Numeric-aware ordering: page2 sorts before page10"""
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", name)]


def list_page_images(folder: Path) -> list[Path]:
    if not folder.is_dir():
        logger.warning(f"Could not access: {folder}")
        return []
    files = [p for p in folder.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS]
    return sorted(files, key=lambda p: natural_sort_key(p.name))


def load_expected_results(path: Path) -> list[InvoiceItem]:
    if not path.exists():
        logger.warning(f"Could not load expected results: {path} not found")
        return []
    items = _items_adapter.validate_python(json.loads(path.read_text(encoding="utf-8")))
    logger.info(f"Loaded {len(items)} expected items from {path.name}")
    return items


async def parse_sample_set(name: str, images_dir: Path, process=None) -> list[InvoiceItem]:
    process = process or process_document
    images = list_page_images(images_dir / name)
    if not images:
        logger.warning(f"No images found in {name}, skipping...")
        return []

    logger.info(f"Creating PDF for {name} with {len(images)} pages")
    pdf_bytes = build_pdf_from_images([p.read_bytes() for p in images])

    result = await process(pdf_bytes, "application/pdf")
    logger.info(f"Processed {len(result.invoice_items)} items from {name}")
    return result.invoice_items


async def run_sample_set(name: str, images_dir: Path, expected_dir: Path, process=None) -> SampleSetResult:
    actual = await parse_sample_set(name, images_dir, process)
    expected = load_expected_results(expected_dir / f"{name}.json")

    issues = validate_parse_results(actual)
    report = compare_items(actual, expected)
    return SampleSetResult(name=name, total_items=len(actual), validation_issues=issues, report=report)


async def run_parsing_test(
    names: list[str],
    images_dir: Path,
    expected_dir: Path,
    process=None,
) -> ParsingTestResult:
    # Sets share nothing, so they run concurrently
    results = await asyncio.gather(
        *(run_sample_set(name, images_dir, expected_dir, process) for name in names)
    )
    return ParsingTestResult(sets=list(results))


def print_report(result: ParsingTestResult) -> None:
    for s in result.sets:
        r = s.report
        print("\n" + "=" * 70)
        print(f"📋 {s.name}")
        print("=" * 70)
        print(f"   Items parsed: {s.total_items}")
        print(f"   Validation issues: {len(s.validation_issues)}")

        for detail in r.details:
            if detail.kind == "missing":
                print(f"\n❌ Missing: \"{detail.expected.item_description}\"")
                print(f"   Expected: {detail.expected.model_dump_json(by_alias=True, exclude={'total'})}")
            elif detail.kind == "mismatch":
                print(f"\n⚠️  Mismatch: \"{detail.expected.item_description}\"")
                for diff in detail.differences:
                    print(f"   • {diff.field}: actual=\"{diff.actual}\" expected=\"{diff.expected}\"")
            else:
                print(f"\n➕ Extra: \"{detail.actual.item_description}\"")
                print(f"   Found: {detail.actual.model_dump_json(by_alias=True, exclude={'total'})}")

        print("\n📊 SUMMARY:")
        print(f"   Items with differences: {r.mismatch_count}")
        print(f"   Missing from actual: {r.missing_count}")
        print(f"   Extra in actual: {r.extra_count}")
        if r.discarded:
            print(f"   Ambiguous duplicates discarded: {len(r.discarded)}")
        print("✅ All items match perfectly!" if s.passed else f"❌ Total differences found: {r.total_differences}")

    print("=" * 70)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run sample invoice sets through the parser and compare with expected results"
    )
    parser.add_argument("sets", nargs="+", help="Sample set names (folders under the images directory)")
    parser.add_argument(
        "--images-dir",
        default=settings.parser_test_images_dir,
        help=f"Folder holding one image folder per set (default: {settings.parser_test_images_dir})"
    )
    parser.add_argument(
        "--expected-dir",
        default=settings.parser_expected_dir,
        help=f"Folder holding <set>.json fixtures (default: {settings.parser_expected_dir})"
    )
    args = parser.parse_args(argv)

    setup_logging()
    logger.info(f"Using test sets: {', '.join(args.sets)}")

    try:
        result = asyncio.run(run_parsing_test(args.sets, Path(args.images_dir), Path(args.expected_dir)))
    except Exception as e:
        logger.error(f"Test execution failed: {e}")
        return 1

    print_report(result)
    return 0 if result.passed else 1


if __name__ == "__main__":
    raise SystemExit(main())
