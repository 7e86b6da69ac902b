"""
Module: worksheet.delivery

Purpose:
    Hand the finished worksheet to the user. The default delivery writes
    the PDF into an output directory under the fixed worksheet filename,
    replacing any earlier file atomically.

Key Classes:
    - FileDelivery: Write bytes to ``output_dir / filename``

Used By:
    - worksheet.assembler: Called once from the Finalizing state
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Union

logger = logging.getLogger(__name__)

# (pdf bytes, filename) -> delivered path
Delivery = Callable[[bytes, str], Path]


class FileDelivery:
    """
    Save worksheets into a directory.

    Writes to a temp file first, then renames over the target, so an
    interrupted write never leaves a truncated worksheet behind.

    Example:
        >>> deliver = FileDelivery(Path("output"))
        >>> deliver(pdf_bytes, "worksheet.pdf")
        PosixPath('output/worksheet.pdf')
    """

    def __init__(self, output_dir: Union[str, Path]) -> None:
        self.output_dir = Path(output_dir)

    def __call__(self, data: bytes, filename: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / filename
        temp_path = target.with_suffix(target.suffix + ".tmp")
        try:
            temp_path.write_bytes(data)
            temp_path.replace(target)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise
        logger.info(f"Saved worksheet to {target}")
        return target
