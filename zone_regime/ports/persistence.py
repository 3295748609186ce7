"""
Persistence port

Stores one PerformanceRecord per symbol. JsonPerformanceStore keeps a JSON
file per symbol; a missing file means a fresh start and a corrupted file is
logged and replaced by a fresh record on load.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from ..signals.performance import PerformanceRecord
from ..utils.exceptions import PersistenceException, log_exception
from ..utils.helpers import normalize_symbol
from ..utils.logger import LoggerMixin


class PersistencePort(ABC):
    """Performance record storage contract"""

    @abstractmethod
    def load(self, symbol: str) -> Optional[PerformanceRecord]:
        """Stored record, None when nothing was saved yet"""

    @abstractmethod
    def save(self, record: PerformanceRecord) -> None:
        """Overwrite the stored record"""


class JsonPerformanceStore(PersistencePort, LoggerMixin):
    """JSON file per symbol under a stats directory"""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def path_for(self, symbol: str) -> Path:
        return self.directory / f"{normalize_symbol(symbol)}_stats.json"

    def _read(self, path: Path) -> PerformanceRecord:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return PerformanceRecord.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise PersistenceException(
                "Performance record cannot be read",
                path=str(path),
                original_exception=e
            )

    def load(self, symbol: str) -> Optional[PerformanceRecord]:
        path = self.path_for(symbol)
        if not path.exists():
            self.logger.info("No stored performance, starting fresh", symbol=symbol)
            return None

        try:
            record = self._read(path)
        except PersistenceException as e:
            log_exception(self.logger, e, {'symbol': symbol})
            return PerformanceRecord(symbol=symbol)

        self.logger.info("Performance loaded", symbol=symbol, trades=record.trades)
        return record

    def save(self, record: PerformanceRecord) -> None:
        path = self.path_for(record.symbol)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(record.to_dict(), f, indent=2)
        except OSError as e:
            raise PersistenceException(
                "Performance record cannot be written",
                path=str(path),
                original_exception=e
            )
        self.logger.debug("Performance saved", symbol=record.symbol, path=str(path))
