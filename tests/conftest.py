import asyncio
import os
import sys
from pathlib import Path
from typing import List, Optional

import pytest
from PIL import Image

# Add src to sys.path so we can import question_bank
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if SRC_PATH.as_posix() not in sys.path:
    sys.path.insert(0, SRC_PATH.as_posix())

# Dialog tests run without a display
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from question_bank.core.models import QuestionRecord  # noqa: E402
from question_bank.worksheet import WorksheetConfig  # noqa: E402
from question_bank.worksheet.errors import MountTargetMissingError, RasterizationError  # noqa: E402
from question_bank.worksheet.rasterizer import Rasterizer  # noqa: E402


class FakeRasterizer(Rasterizer):
    """
    In-memory render surface.

    Captures return a solid image; ``fail_on`` makes the capture of any
    document containing that text raise, ``block_on`` makes it wait
    until ``release`` is set.
    """

    def __init__(
        self,
        size=(400, 600),
        fail_on: Optional[str] = None,
        block_on: Optional[str] = None,
        missing_target: bool = False,
    ):
        self.size = size
        self.fail_on = fail_on
        self.block_on = block_on
        self.missing_target = missing_target
        self.mounted: List[str] = []
        self.captures = 0
        self.opened = False
        self.closed = False
        self.blocked: Optional[asyncio.Event] = None
        self.release: Optional[asyncio.Event] = None

    async def open(self) -> None:
        self.opened = True

    async def mount(self, html: str) -> None:
        self.mounted.append(html)

    async def capture(self, selector: str) -> Image.Image:
        current = self.mounted[-1]
        if self.missing_target:
            raise MountTargetMissingError(f"No element matches {selector!r}")
        if self.fail_on and self.fail_on in current:
            raise RasterizationError("screenshot failed")
        if self.block_on and self.block_on in current:
            self.blocked = self.blocked or asyncio.Event()
            self.release = self.release or asyncio.Event()
            self.blocked.set()
            await self.release.wait()
        self.captures += 1
        return Image.new("RGB", self.size, color="white")

    async def close(self) -> None:
        self.closed = True


def make_record(index: int, markscheme: Optional[str] = "<p>Answer</p>", **overrides) -> QuestionRecord:
    fields = dict(
        id=f"q-{index}",
        level="HL",
        subject="Mathematics",
        marks=str(index + 1),
        question_body=f"<p>Question body {index}</p>",
        markscheme_body=markscheme,
        question_title="Algebra Basics",
    )
    fields.update(overrides)
    return QuestionRecord(**fields)


@pytest.fixture
def fake_rasterizer():
    return FakeRasterizer()


@pytest.fixture
def fast_config():
    """Worksheet config without the settle delay."""
    return WorksheetConfig(settle_seconds=0)


@pytest.fixture
def sample_record():
    return make_record(0)


@pytest.fixture
def sample_image(tmp_path: Path):
    """Create a simple test image."""
    img = Image.new("RGB", (200, 100), color="white")
    img_path = tmp_path / "sample.png"
    img.save(img_path)
    return img_path
