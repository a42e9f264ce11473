"""Medication to adherence-measure classification by RxNorm ingredient code."""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import structlog

from ..core.models import FillRecord, Measure

logger = structlog.get_logger()


# Simplified ingredient-level value sets. A production deployment would
# load the full NDC/RxNorm lists for the measurement year via config.
DEFAULT_VALUE_SETS: Dict[str, Sequence[str]] = {
    # Statins
    "MAC": (
        "83367",    # Atorvastatin
        "36567",    # Simvastatin
        "301542",   # Rosuvastatin
        "42463",    # Pravastatin
        "6472",     # Lovastatin
        "41127",    # Fluvastatin
        "861634",   # Pitavastatin
    ),
    # Biguanides, sulfonylureas, thiazolidinediones, DPP-4 and SGLT2 inhibitors
    "MAD": (
        "6809",     # Metformin
        "4821",     # Glipizide
        "4815",     # Glyburide
        "593411",   # Sitagliptin
        "33738",    # Pioglitazone
        "25789",    # Glimepiride
        "614348",   # Saxagliptin
        "857974",   # Linagliptin
        "1368001",  # Canagliflozin
        "1545653",  # Empagliflozin
    ),
    # ACE inhibitors and ARBs
    "MAH": (
        "310965",   # Lisinopril
        "52175",    # Losartan
        "3827",     # Enalapril
        "69749",    # Valsartan
        "35296",    # Ramipril
        "29046",    # Benazepril
        "50166",    # Fosinopril
        "83515",    # Irbesartan
        "73494",    # Olmesartan
        "321064",   # Telmisartan
    ),
}


class MeasureClassifier:
    """Maps medication keys to the measure they count toward."""

    def __init__(self, value_sets: Optional[Mapping[str, Iterable[str]]] = None):
        """Build the code index. Unknown measure codes raise ValueError."""
        value_sets = DEFAULT_VALUE_SETS if value_sets is None else value_sets
        index: Dict[str, Measure] = {}
        for measure_code, codes in value_sets.items():
            measure = Measure(measure_code)
            for code in codes:
                index[str(code).strip()] = measure
        self._index = index

    def classify(self, medication_key: str) -> Optional[Measure]:
        """Return the measure for a medication key, or None if it counts toward none."""
        if not medication_key:
            return None
        return self._index.get(str(medication_key).strip())

    def group_fills(self, fills: Iterable[FillRecord]) -> Dict[Measure, List[FillRecord]]:
        """Group fills by measure, keeping input order within each group.

        Groups come back in Measure declaration order so that iteration
        over the result is deterministic.
        """
        grouped: Dict[Measure, List[FillRecord]] = {}
        unmatched = 0
        for fill in fills:
            measure = self.classify(fill.medication_key)
            if measure is None:
                unmatched += 1
                continue
            grouped.setdefault(measure, []).append(fill)

        if unmatched:
            logger.debug("fills_without_measure", count=unmatched)

        return {measure: grouped[measure] for measure in Measure if measure in grouped}
