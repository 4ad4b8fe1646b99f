"""CSV reporting and initial-attribute files.

Each stage type is reported to its own file, `<typeName>.csv`, with a
header (full or short names) followed by one value line per individual
per report time. Lines use the attribute vector layout, so a report row
can be read back as an initial condition.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Dict, Iterable, List, TextIO, Union

from pcod_lhs.stages import StageIndividual
from pcod_lhs.types import FormatError, UnknownStage

logger = logging.getLogger(__name__)


class StageReportWriter:
    """Writes individuals to one CSV file per type name.

    Args:
        directory: Output directory (created if missing).
        short_names: Use attribute keys instead of full names in headers.
    """

    def __init__(self, directory: Union[str, Path], short_names: bool = False):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.short_names = short_names
        self._files: Dict[str, TextIO] = {}

    def path_for(self, type_name: str) -> Path:
        return self.directory / f"{type_name}.csv"

    def _file(self, ind: StageIndividual) -> TextIO:
        f = self._files.get(ind.type_name)
        if f is None:
            f = open(self.path_for(ind.type_name), 'w')
            f.write(ind.report_header(self.short_names) + '\n')
            self._files[ind.type_name] = f
        return f

    def write(self, ind: StageIndividual) -> None:
        self._file(ind).write(ind.report() + '\n')

    def write_all(self, individuals: Iterable[StageIndividual]) -> int:
        n = 0
        for ind in individuals:
            self.write(ind)
            n += 1
        return n

    def close(self) -> None:
        for f in self._files.values():
            f.close()
        self._files.clear()

    def __enter__(self) -> 'StageReportWriter':
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def read_attribute_file(
    path: Union[str, Path],
    factory,
    skip_bad_rows: bool = False,
    initialize: bool = True,
) -> List[StageIndividual]:
    """Create individuals from a CSV of attribute vectors.

    Blank lines, lines starting with '#' and header rows (first column
    'typeName') are skipped. Each row starts with its type name.

    Args:
        path: CSV file.
        factory: StageFactory that builds the individuals.
        skip_bad_rows: Log and skip rows that fail to parse instead of
            raising.
        initialize: Place individuals on the grid.

    Raises:
        FileNotFoundError: If the file does not exist.
        FormatError: On a malformed row (unless skip_bad_rows).
        UnknownStage: On an unregistered type name (unless skip_bad_rows).
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Attribute file not found: {path}")
    individuals: List[StageIndividual] = []
    with open(path, newline='') as f:
        for line_no, row in enumerate(csv.reader(f), start=1):
            if not row or not ''.join(row).strip():
                continue
            first = row[0].strip()
            if first.startswith('#') or first == 'typeName':
                continue
            try:
                individuals.append(factory.from_vector(row, initialize=initialize))
            except (FormatError, UnknownStage) as exc:
                if not skip_bad_rows:
                    raise
                logger.warning("%s:%d: skipped row: %s", path, line_no, exc)
    return individuals
