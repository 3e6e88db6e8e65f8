"""Default browser opener for interactive login."""

from __future__ import annotations

import logging
import webbrowser
from typing import Callable

logger = logging.getLogger(__name__)

BrowserOpener = Callable[[str], bool]
"""Opens a URL in the user's browser and reports whether that worked."""


def open_in_browser(url: str) -> bool:
    """Open *url* in a new tab of the default browser.

    Returns:
        ``False`` when no runnable browser was found, ``True`` otherwise.
    """
    try:
        opened = webbrowser.open(url, new=2)
    except webbrowser.Error as exc:
        logger.warning("Browser launch failed: %s", exc)
        return False
    if not opened:
        logger.warning("No runnable browser found")
    return opened
