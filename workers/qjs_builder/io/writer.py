"""
Writer — serialize the build receipt.

Filesystem layout:
    <project>/build/build_receipt.json
"""
import json
from pathlib import Path

from qjs_builder.io.schema import BuildReceipt

RECEIPT_NAME = "build_receipt.json"


def write_receipt(receipt: BuildReceipt, output_dir: Path) -> Path:
    """
    Write build_receipt.json into *output_dir* (created if missing).
    Returns the receipt path.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / RECEIPT_NAME
    path.write_text(
        json.dumps(
            receipt.model_dump(mode="json"),
            indent=2,
            sort_keys=True,
        )
        + "\n"
    )
    return path
