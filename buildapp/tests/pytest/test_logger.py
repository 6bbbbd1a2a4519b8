"""
Tests for the console logger.
"""

from __future__ import annotations

import re
import threading

import pytest

from buildapp.core.utils import Logger


@pytest.mark.evergreen
class TestLogger:
    """Prefixes, color handling and whole-line output."""

    def test_plain_prefixes(self, capsys: pytest.CaptureFixture[str]) -> None:
        logger = Logger(use_color=False)
        logger.success("built")
        logger.warning("slow")
        logger.error("broken")
        logger.table_row("main.js", "2.0 KiB", col1_width=10)
        assert capsys.readouterr().out.splitlines() == [
            "  [OK] built",
            "  [WARN] slow",
            "  [ERROR] broken",
            "  main.js    2.0 KiB",
        ]

    def test_color_codes(self, capsys: pytest.CaptureFixture[str]) -> None:
        logger = Logger(use_color=True)
        logger.success("built")
        assert capsys.readouterr().out == "  \033[92m[OK]\033[0m built\n"

        logger.set_color(False)
        logger.header("Build (dev)")
        assert capsys.readouterr().out == "\n=== Build (dev) ===\n"

    def test_lines_from_threads_stay_whole(self, capsys: pytest.CaptureFixture[str]) -> None:
        logger = Logger(use_color=False)

        def worker(n: int) -> None:
            for i in range(50):
                logger.info(f"worker-{n} line-{i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 400
        assert all(re.fullmatch(r"  worker-\d line-\d+", line) for line in lines)
