# services/emissions/emissions_factory.py
from __future__ import annotations
import logging
from pathlib import Path
from typing import Literal, Optional

from core.exceptions import ReferenceDataError
from .factors import ReferenceTables

logger = logging.getLogger(__name__)

PresetName = Literal["sample", "xlsx"]


def load_reference_tables(
    preset: PresetName = "sample", xlsx_path: Optional[str | Path] = None
) -> ReferenceTables:
    """
    Return a fresh ReferenceTables snapshot (never shared between requests).
    - 'sample' -> built-in ISPRA 2024 / IPCC AR5 tables
    - 'xlsx'   -> parses the workbook at xlsx_path, falls back to the sample
    """
    if preset == "xlsx":
        if xlsx_path is None:
            raise ValueError("xlsx preset requires xlsx_path")
        try:
            return ReferenceTables.from_xlsx(xlsx_path, name=Path(xlsx_path).stem)
        except (OSError, ReferenceDataError, ValueError) as e:
            # Fallback so reports still run
            logger.warning(
                "Failed to parse reference workbook %s: %s. Using sample tables.",
                xlsx_path,
                e,
            )
            return ReferenceTables.sample()

    if preset != "sample":
        raise ValueError(f"Unknown reference preset '{preset}'")
    return ReferenceTables.sample()
