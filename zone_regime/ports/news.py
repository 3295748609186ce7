"""
News filter

Stand-in for an economic-calendar check. No calendar is integrated, so no
moment is ever inside a news window.
"""

from datetime import datetime
from typing import Optional


class NewsFilter:
    """Economic news blackout check"""

    def is_news_window(self, symbol: str, at: Optional[datetime] = None) -> bool:
        return False
